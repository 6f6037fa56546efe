"""
Inference engine for age and gender prediction.

The engine takes ownership of a normalized image buffer, runs the age and
gender forward passes against the registry's models and maps the raw outputs
to an AgeGenderPrediction. Every buffer involved (the input and both outputs)
is released exactly once, whether the prediction succeeds or fails.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from ..common.errors import PredictionError
from ..common.tensors import TensorBuffer, TensorTracker, default_tracker
from ..common.utils import clamp, round_half_up
from ..config import CALIBRATION_CONFIG
from .models import AgeGenderPrediction, Gender
from .registry import ModelRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgeCalibration:
    """
    Placeholder mapping from raw model outputs to reported values.

    The affine age constants and the age confidence heuristic (a baseline
    plus uniform jitter) have no calibration basis. Callers must treat
    age_confidence as a rough signal, not a predictive variance.
    """

    age_scale: float = 100.0
    age_offset: float = 25.0
    age_min: int = 0
    age_max: int = 100
    confidence_baseline: float = 0.75
    confidence_jitter: float = 0.2

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "AgeCalibration":
        return cls(
            age_scale=config["AGE_SCALE"],
            age_offset=config["AGE_OFFSET"],
            age_min=config["AGE_MIN"],
            age_max=config["AGE_MAX"],
            confidence_baseline=config["AGE_CONFIDENCE_BASELINE"],
            confidence_jitter=config["AGE_CONFIDENCE_JITTER"],
        )

    def age_from_raw(self, raw: float) -> int:
        age = clamp(raw * self.age_scale + self.age_offset, self.age_min, self.age_max)
        return round_half_up(age)

    def age_confidence(self, rng: np.random.Generator) -> float:
        jitter = rng.uniform(0.0, self.confidence_jitter) if self.confidence_jitter > 0 else 0.0
        return float(clamp(self.confidence_baseline + jitter, 0.0, 1.0))


class InferenceEngine:
    """Runs single-image age and gender inference."""

    def __init__(
        self,
        registry: ModelRegistry,
        tracker: Optional[TensorTracker] = None,
        calibration: Optional[AgeCalibration] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Args:
            registry: Registry holding the age and gender models.
            tracker: Tracker used for forward-pass output buffers.
            calibration: Age mapping and confidence placeholder parameters.
            rng: Random generator for the age confidence jitter.
        """
        self.registry = registry
        self.tracker = tracker or default_tracker
        self.calibration = calibration or AgeCalibration.from_config(CALIBRATION_CONFIG)
        self.rng = rng or np.random.default_rng()

    def predict(self, image: TensorBuffer) -> AgeGenderPrediction:
        """
        Predict age and gender for a normalized image.

        The engine takes ownership of `image` and disposes it before returning
        or raising.

        Args:
            image: Buffer of shape (1, 224, 224, 3) from ImageNormalizer.

        Returns:
            A fully populated AgeGenderPrediction.

        Raises:
            NotLoadedError: If the registry is not ready. No forward pass runs.
            PredictionError: If any forward pass or output decoding fails.
        """
        with image:
            age_model, gender_model = self.registry.models()

            try:
                with self.tracker.scope():
                    age_output = self.tracker.allocate(age_model.predict(image.data), name="age_output")
                    raw_age = self._read_scalar(age_output)

                    gender_output = self.tracker.allocate(
                        gender_model.predict(image.data), name="gender_output"
                    )
                    p_male, p_female = self._read_probabilities(gender_output)
            except Exception as e:
                raise PredictionError(f"Prediction failed: {e}") from e

        gender = Gender.MALE if p_male > p_female else Gender.FEMALE
        prediction = AgeGenderPrediction(
            age=self.calibration.age_from_raw(raw_age),
            gender=gender,
            age_confidence=self.calibration.age_confidence(self.rng),
            gender_confidence=float(clamp(max(p_male, p_female), 0.0, 1.0)),
        )
        logger.debug("Prediction: %s", prediction)
        return prediction

    def predict_image(self, image, normalizer) -> AgeGenderPrediction:
        """Normalize a raw image and predict on it."""
        return self.predict(normalizer.normalize(image))

    @staticmethod
    def _read_scalar(output: TensorBuffer) -> float:
        values = np.asarray(output.data, dtype=np.float64).reshape(-1)
        if values.size != 1:
            raise ValueError(f"Age model returned {values.size} values, expected 1")
        raw = float(values[0])
        if not math.isfinite(raw):
            raise ValueError(f"Age model returned a non-finite value: {raw}")
        return raw

    @staticmethod
    def _read_probabilities(output: TensorBuffer):
        values = np.asarray(output.data, dtype=np.float64).reshape(-1)
        if values.size != 2:
            raise ValueError(f"Gender model returned {values.size} values, expected 2")
        if not np.all(np.isfinite(values)):
            raise ValueError("Gender model returned non-finite probabilities")
        return float(values[0]), float(values[1])
