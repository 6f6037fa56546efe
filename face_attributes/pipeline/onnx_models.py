from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import onnxruntime as ort


class ONNXAttributeModel:
    """ONNX age or gender model wrapper."""

    def __init__(self, model_path: Union[str, Path], providers: Optional[Sequence[str]] = None):
        self.session: Optional[ort.InferenceSession] = ort.InferenceSession(
            str(model_path), providers=list(providers) if providers else None
        )
        model_input = self.session.get_inputs()[0]
        self.input_name = model_input.name
        self.input_shape = model_input.shape
        # Exported torch models declare (batch, 3, H, W); keras-style ones (batch, H, W, 3).
        self.channels_first = len(self.input_shape) == 4 and self.input_shape[1] == 3

    def predict(self, batch: np.ndarray) -> np.ndarray:
        """Run a forward pass on an NHWC float32 batch."""
        if self.session is None:
            raise RuntimeError("Model has been disposed")

        model_input = self._preprocess(batch)
        return self.session.run(None, {self.input_name: model_input})[0]

    def _preprocess(self, batch: np.ndarray) -> np.ndarray:
        """Match the layout the session expects."""
        batch = batch.astype(np.float32, copy=False)
        if self.channels_first:
            batch = np.transpose(batch, (0, 3, 1, 2))
        return np.ascontiguousarray(batch)

    def dispose(self) -> None:
        self.session = None


def build_onnx_model(model_path: Union[str, Path]) -> ONNXAttributeModel:
    """Load an exported model, failing early with a clear message when it is missing."""
    if not Path(model_path).exists():
        raise FileNotFoundError(f"ONNX model not found: {model_path}")
    return ONNXAttributeModel(model_path)
