"""
Central configuration file for the face attribute pipeline.

Defaults live in module-level dicts. `load_config` merges an optional YAML
override file on top of copies of these dicts, e.g.:

    model:
      BACKEND: onnx
    calibration:
      AGE_OFFSET: 20.0
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .common.constants import (
    AGE_CHECKPOINT_PATH,
    GENDER_CHECKPOINT_PATH,
    ONNX_AGE_PATH,
    ONNX_GENDER_PATH,
)

# --- Model Configuration ---
MODEL_CONFIG = {
    "BACKEND": "torch",  # "torch" or "onnx"
    "AGE_CHECKPOINT_PATH": str(AGE_CHECKPOINT_PATH),
    "GENDER_CHECKPOINT_PATH": str(GENDER_CHECKPOINT_PATH),
    "ONNX_AGE_PATH": str(ONNX_AGE_PATH),
    "ONNX_GENDER_PATH": str(ONNX_GENDER_PATH),
    "SEED": 0,  # Seed for freshly initialized weights when no checkpoint exists
    "NUM_THREADS": None,  # torch intra-op threads, None keeps the runtime default
}

# --- Preprocessing Configuration ---
PREPROCESS_CONFIG = {
    "PREVIEW_MAX_SIZE": 400,
}

# --- Age / Confidence Calibration ---
# Placeholder constants with no documented calibration basis. Kept configurable.
CALIBRATION_CONFIG = {
    "AGE_SCALE": 100.0,
    "AGE_OFFSET": 25.0,
    "AGE_MIN": 0,
    "AGE_MAX": 100,
    "AGE_CONFIDENCE_BASELINE": 0.75,
    "AGE_CONFIDENCE_JITTER": 0.2,
}

# --- Upload Validation ---
VALIDATION_CONFIG = {
    "MAX_FILE_SIZE_MB": 10,
    "ALLOWED_CONTENT_TYPES": ["image/jpeg", "image/jpg", "image/png", "image/webp"],
}

# --- Hosted API ---
API_CONFIG = {
    "HOST": "0.0.0.0",
    "PORT": 8000,
    "LOAD_TIMEOUT_SECONDS": 120.0,
}

_SECTIONS = {
    "model": MODEL_CONFIG,
    "preprocess": PREPROCESS_CONFIG,
    "calibration": CALIBRATION_CONFIG,
    "validation": VALIDATION_CONFIG,
    "api": API_CONFIG,
}


def default_config() -> Dict[str, Dict[str, Any]]:
    """Return a deep copy of the default configuration, keyed by section."""
    return copy.deepcopy(_SECTIONS)


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Dict[str, Any]]:
    """
    Load configuration, optionally overriding defaults from a YAML file.

    Args:
        path: YAML file with any subset of the sections
            (model, preprocess, calibration, validation, api).

    Returns:
        A dict of section name -> settings dict.

    Raises:
        FileNotFoundError: If the override file does not exist.
        ValueError: If the file names an unknown section or key.
    """
    config = default_config()
    if path is None:
        return config

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        overrides = yaml.safe_load(f) or {}

    for section, values in overrides.items():
        if section not in config:
            raise ValueError(f"Unknown config section '{section}' in {path}")
        for key, value in (values or {}).items():
            if key not in config[section]:
                raise ValueError(f"Unknown key '{key}' in config section '{section}'")
            config[section][key] = value

    return config
