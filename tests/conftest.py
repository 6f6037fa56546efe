import io
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

from face_attributes.common.tensors import TensorTracker
from face_attributes.pipeline.engine import InferenceEngine
from face_attributes.pipeline.factory import Pipeline
from face_attributes.pipeline.loader import ModelLoader
from face_attributes.pipeline.registry import ModelRegistry
from face_attributes.preprocessing.normalizer import ImageNormalizer


@pytest.fixture
def tracker():
    """A fresh tracker so each test can count its own buffers."""
    return TensorTracker()


@pytest.fixture
def make_image_bytes():
    """
    Returns a function that encodes a solid-color image of the given size.
    """

    def _make(width, height, fmt="JPEG", color=(200, 120, 40)):
        pixels = np.zeros((height, width, 3), dtype=np.uint8)
        pixels[:] = color
        buffer = io.BytesIO()
        Image.fromarray(pixels).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def make_model():
    """
    Returns a function that builds a mock model handle.

    The mock returns `output` from predict, or raises `error` if given.
    """

    def _make(output=None, error=None):
        model = MagicMock()
        if error is not None:
            model.predict.side_effect = error
        else:
            model.predict.return_value = np.array(output, dtype=np.float32)
        return model

    return _make


@pytest.fixture
def age_model(make_model):
    # Raw 0.3 maps to age 55 with the default calibration
    return make_model([[0.3]])


@pytest.fixture
def gender_model(make_model):
    return make_model([[0.8, 0.2]])


@pytest.fixture
def ready_registry(age_model, gender_model):
    registry = ModelRegistry()
    registry.install(age_model, gender_model)
    return registry


@pytest.fixture
def make_pipeline(tracker, age_model, gender_model):
    """
    Returns a function that builds a pipeline around the mock models.

    With load=True the loader runs to completion inline before returning.
    """

    def _make(load=True):
        registry = ModelRegistry()
        loader = ModelLoader(
            registry,
            age_factory=lambda: age_model,
            gender_factory=lambda: gender_model,
            tracker=tracker,
        )
        if load:
            loader.start(background=False)
        return Pipeline(
            registry=registry,
            loader=loader,
            normalizer=ImageNormalizer(tracker=tracker),
            engine=InferenceEngine(registry, tracker=tracker, rng=np.random.default_rng(0)),
            tracker=tracker,
        )

    return _make
