"""
Wires the pipeline together from configuration.

Builds one registry per process and hands it to both the loader and the
engine, so there is no hidden global model state.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

from ..common.tensors import TensorTracker, default_tracker
from ..config import default_config
from ..preprocessing.normalizer import ImageNormalizer
from .engine import AgeCalibration, InferenceEngine
from .loader import ModelLoader
from .models import AttributeModel
from .registry import ModelRegistry


@dataclass
class Pipeline:
    """The objects a caller needs for one process lifetime."""

    registry: ModelRegistry
    loader: ModelLoader
    normalizer: ImageNormalizer
    engine: InferenceEngine
    tracker: TensorTracker


def model_factories(
    model_config: Dict[str, Any],
) -> Tuple[Callable[[], AttributeModel], Callable[[], AttributeModel], Callable[[], None]]:
    """
    Return (age_factory, gender_factory, engine_ready) for the configured backend.

    Only the selected backend library is imported.
    """
    backend = model_config["BACKEND"]

    if backend == "torch":
        from .torch_models import build_torch_model, prepare_torch_runtime

        seed = model_config["SEED"]
        return (
            lambda: build_torch_model("age", model_config["AGE_CHECKPOINT_PATH"], seed=seed),
            lambda: build_torch_model("gender", model_config["GENDER_CHECKPOINT_PATH"], seed=seed + 1),
            lambda: prepare_torch_runtime(model_config["NUM_THREADS"]),
        )

    if backend == "onnx":
        from .onnx_models import build_onnx_model

        return (
            lambda: build_onnx_model(model_config["ONNX_AGE_PATH"]),
            lambda: build_onnx_model(model_config["ONNX_GENDER_PATH"]),
            lambda: None,
        )

    raise ValueError(f"Unknown model backend '{backend}'. Expected 'torch' or 'onnx'.")


def create_pipeline(
    config: Optional[Dict[str, Dict[str, Any]]] = None,
    tracker: Optional[TensorTracker] = None,
    rng: Optional[np.random.Generator] = None,
) -> Pipeline:
    """Build an unstarted pipeline. Call `pipeline.loader.start()` to load models."""
    config = config or default_config()
    tracker = tracker or default_tracker

    registry = ModelRegistry()
    age_factory, gender_factory, engine_ready = model_factories(config["model"])
    loader = ModelLoader(
        registry,
        age_factory=age_factory,
        gender_factory=gender_factory,
        engine_ready=engine_ready,
        tracker=tracker,
    )
    normalizer = ImageNormalizer(tracker=tracker)
    engine = InferenceEngine(
        registry,
        tracker=tracker,
        calibration=AgeCalibration.from_config(config["calibration"]),
        rng=rng,
    )
    return Pipeline(registry=registry, loader=loader, normalizer=normalizer, engine=engine, tracker=tracker)
