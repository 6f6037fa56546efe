"""
Defines the age and gender model architectures.

Both networks share the same small convolutional feature stack and differ
only in their head: AgeNet regresses a single scalar, GenderNet outputs
softmax probabilities for [male, female].

TorchAttributeModel wraps a network so it satisfies the AttributeModel
protocol: numpy NHWC in, numpy out, evaluation mode, no autograd.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F

logger = logging.getLogger(__name__)


def _feature_stack() -> nn.Sequential:
    return nn.Sequential(
        nn.Conv2d(3, 32, kernel_size=3),
        nn.ReLU(inplace=True),
        nn.MaxPool2d(2),
        nn.Conv2d(32, 64, kernel_size=3),
        nn.ReLU(inplace=True),
        nn.MaxPool2d(2),
        nn.Conv2d(64, 128, kernel_size=3),
        nn.ReLU(inplace=True),
        nn.AdaptiveAvgPool2d(1),
        nn.Flatten(),
    )


def _head(out_features: int) -> nn.Sequential:
    return nn.Sequential(
        nn.Dropout(p=0.5),
        nn.Linear(128, 128),
        nn.ReLU(inplace=True),
        nn.Dropout(p=0.3),
        nn.Linear(128, out_features),
    )


class AgeNet(nn.Module):
    """Age regression network. Outputs one linear value per image."""

    def __init__(self):
        super(AgeNet, self).__init__()
        self.features = _feature_stack()
        self.head = _head(1)

    def forward(self, x):
        return self.head(self.features(x))


class GenderNet(nn.Module):
    """Gender classification network. Outputs [p_male, p_female] per image."""

    def __init__(self):
        super(GenderNet, self).__init__()
        self.features = _feature_stack()
        self.head = _head(2)

    def forward(self, x):
        return F.softmax(self.head(self.features(x)), dim=1)


ARCHITECTURES = {
    "age": AgeNet,
    "gender": GenderNet,
}


class TorchAttributeModel:
    """Torch model handle implementing the AttributeModel protocol."""

    def __init__(self, module: nn.Module, device: Union[str, torch.device] = "cpu"):
        self.device = torch.device(device)
        self.module: Optional[nn.Module] = module.to(self.device)
        self.module.eval()

    def predict(self, batch: np.ndarray) -> np.ndarray:
        """Run a forward pass on an NHWC float32 batch."""
        if self.module is None:
            raise RuntimeError("Model has been disposed")

        inputs = torch.from_numpy(np.ascontiguousarray(batch, dtype=np.float32))
        inputs = inputs.permute(0, 3, 1, 2).contiguous().to(self.device)
        with torch.no_grad():
            outputs = self.module(inputs)
        return outputs.cpu().numpy()

    def dispose(self) -> None:
        self.module = None


def build_torch_model(
    kind: str,
    checkpoint_path: Optional[Union[str, Path]] = None,
    seed: int = 0,
    device: Union[str, torch.device] = "cpu",
) -> TorchAttributeModel:
    """
    Construct an age or gender model.

    Args:
        kind: "age" or "gender".
        checkpoint_path: Optional state_dict checkpoint. When it is missing the
            network keeps freshly initialized weights drawn from `seed`.
        seed: Seed for weight initialization.
        device: Torch device to run on.

    Returns:
        A ready-to-use TorchAttributeModel.
    """
    if kind not in ARCHITECTURES:
        raise ValueError(f"Unknown model kind '{kind}'. Expected one of {list(ARCHITECTURES)}")

    with torch.random.fork_rng(devices=[]):
        torch.manual_seed(seed)
        module = ARCHITECTURES[kind]()

    if checkpoint_path is not None and Path(checkpoint_path).exists():
        state_dict = torch.load(str(checkpoint_path), map_location="cpu", weights_only=True)
        module.load_state_dict(state_dict)
        logger.info("Loaded %s model weights from %s", kind, checkpoint_path)
    else:
        logger.warning(
            "No %s checkpoint found at %s, using freshly initialized weights", kind, checkpoint_path
        )

    return TorchAttributeModel(module, device=device)


def prepare_torch_runtime(num_threads: Optional[int] = None) -> None:
    """Configure the torch runtime before any model is built."""
    if num_threads is not None:
        torch.set_num_threads(num_threads)
    logger.info("Torch runtime ready (threads=%d)", torch.get_num_threads())


def export_to_onnx(model: TorchAttributeModel, output_path: Union[str, Path], opset: int = 12) -> Path:
    """Export a torch model to ONNX with an NCHW (batch, 3, 224, 224) input."""
    if model.module is None:
        raise RuntimeError("Model has been disposed")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    dummy_input = torch.zeros(1, 3, 224, 224, device=model.device)
    torch.onnx.export(
        model.module,
        dummy_input,
        str(output_path),
        export_params=True,
        opset_version=opset,
        do_constant_folding=True,
        dynamo=False,
        input_names=["input"],
        output_names=["output"],
        dynamic_axes={
            "input": {0: "batch_size"},
            "output": {0: "batch_size"},
        },
    )
    logger.info("Exported ONNX model to %s", output_path)
    return output_path
