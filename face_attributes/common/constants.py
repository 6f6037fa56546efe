#!/usr/bin/env python
"""
Shared constants for the face_attributes project.

This file contains common paths and fixed values that are used across
different scripts (export, inference, serving) to ensure consistency.
"""

from pathlib import Path

# --- Core Paths ---
PROJECT_ROOT = Path(__file__).resolve().parents[2]
MODELS_DIR = PROJECT_ROOT / "models"

# --- Torch Checkpoints ---
AGE_CHECKPOINT_PATH = MODELS_DIR / "age_net.pt"
GENDER_CHECKPOINT_PATH = MODELS_DIR / "gender_net.pt"

# --- ONNX Export ---
ONNX_DIR = MODELS_DIR / "onnx"
ONNX_AGE_PATH = ONNX_DIR / "age.onnx"
ONNX_GENDER_PATH = ONNX_DIR / "gender.onnx"

# --- Canonical Model Input ---
TARGET_SIZE = 224
NUM_CHANNELS = 3
INPUT_SHAPE = (1, TARGET_SIZE, TARGET_SIZE, NUM_CHANNELS)

# --- Loader Progress Checkpoints ---
PROGRESS_ENGINE_READY = 20
PROGRESS_AGE_MODEL = 60
PROGRESS_GENDER_MODEL = 90
PROGRESS_COMPLETE = 100
