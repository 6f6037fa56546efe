"""
Holds the age and gender models for the lifetime of a process.

The registry is created once at startup and passed to the loader (which
installs the models) and to the inference engine (which reads them). Both
models become visible together or not at all.
"""

import logging
import threading
from typing import Optional, Tuple

from ..common.errors import NotLoadedError
from .models import AttributeModel

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Atomic holder for the (age, gender) model pair."""

    def __init__(self):
        self._lock = threading.Lock()
        self._models: Optional[Tuple[AttributeModel, AttributeModel]] = None
        self._disposed = False

    def is_ready(self) -> bool:
        with self._lock:
            return self._models is not None

    def install(self, age_model: AttributeModel, gender_model: AttributeModel) -> None:
        """
        Publish both warmed models in one step.

        Raises:
            RuntimeError: If models are already installed or the registry has
                been disposed. The registry is written once per process.
        """
        if age_model is None or gender_model is None:
            raise ValueError("Both age and gender models are required")

        with self._lock:
            if self._disposed:
                raise RuntimeError("Model registry has been disposed")
            if self._models is not None:
                raise RuntimeError("Models are already installed in this registry")
            self._models = (age_model, gender_model)
        logger.info("Model registry ready")

    def models(self) -> Tuple[AttributeModel, AttributeModel]:
        """
        Return the (age, gender) pair.

        Raises:
            NotLoadedError: If the models have not been installed.
        """
        with self._lock:
            models = self._models
        if models is None:
            raise NotLoadedError("Models not loaded. Call start() on the model loader first.")
        return models

    def dispose(self) -> None:
        """Withdraw both models and release them."""
        with self._lock:
            models, self._models = self._models, None
            self._disposed = True
        if models is None:
            return
        for model in models:
            model.dispose()
        logger.info("Model registry disposed")
