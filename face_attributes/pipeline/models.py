"""
Base model protocols and value types for the age/gender pipeline.

Defines the interface every model backend implements and the immutable
results exchanged with callers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import numpy as np


class Gender(Enum):
    """Gender classification results, in model output order."""

    MALE = "male"
    FEMALE = "female"


@dataclass(frozen=True)
class AgeGenderPrediction:
    """A single prediction. Never partially populated."""

    age: int
    gender: Gender
    age_confidence: float
    gender_confidence: float

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation with camelCase keys."""
        return {
            "age": self.age,
            "gender": self.gender.value,
            "ageConfidence": self.age_confidence,
            "genderConfidence": self.gender_confidence,
        }


@dataclass(frozen=True)
class ModelLoadingState:
    """
    Immutable snapshot of the model loader.

    `is_loaded` and `error` are mutually exclusive and both imply
    `is_loading` is False.
    """

    is_loading: bool = False
    is_loaded: bool = False
    error: Optional[str] = None
    progress: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.is_loaded or self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isLoading": self.is_loading,
            "isLoaded": self.is_loaded,
            "error": self.error,
            "progress": self.progress,
        }


class AttributeModel(Protocol):
    """Protocol for compiled age or gender models."""

    def predict(self, batch: np.ndarray) -> np.ndarray:
        """
        Run one forward pass.

        Args:
            batch: float32 array of shape (1, 224, 224, 3), values in [0, 1]

        Returns:
            Raw model output: shape (1, 1) for age, (1, 2) softmax for gender
        """
        ...

    def dispose(self) -> None:
        """Release the resources held by the model."""
        ...
