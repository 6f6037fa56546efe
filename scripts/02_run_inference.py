#!/usr/bin/env python3
"""
Single-Image Age and Gender Inference

1. Loads and warms up the age and gender models, printing loading progress
2. Validates and normalizes each input image
3. Runs the age and gender models and prints the prediction
4. Optionally writes a display preview next to each input
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to Python path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(PROJECT_ROOT))

from face_attributes.common.errors import FaceAttributesError
from face_attributes.config import load_config
from face_attributes.pipeline.factory import create_pipeline
from face_attributes.pipeline.loader import wait_for_models
from face_attributes.preprocessing.normalizer import create_preview
from face_attributes.preprocessing.validation import validate_upload

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)


def main(args):
    config = load_config(args.config)
    pipeline = create_pipeline(config)

    pipeline.loader.start(background=True)
    wait_for_models(pipeline.loader, timeout=config["api"]["LOAD_TIMEOUT_SECONDS"])

    exit_code = 0
    for image_path in args.images:
        image_path = Path(image_path)
        data = image_path.read_bytes()
        try:
            validate_upload(data)
            prediction = pipeline.engine.predict(pipeline.normalizer.normalize(data))
        except FaceAttributesError as e:
            print(f"{image_path}: {type(e).__name__}: {e}")
            exit_code = 1
            continue

        print(f"{image_path}: {json.dumps(prediction.to_dict())}")

        if args.preview:
            preview_path = image_path.with_name(f"{image_path.stem}_preview.png")
            create_preview(data, config["preprocess"]["PREVIEW_MAX_SIZE"]).save(preview_path)
            print(f"Saved preview to: {preview_path}")

    pipeline.loader.dispose()
    return exit_code


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Predict age and gender for images.")
    parser.add_argument("images", nargs="+", help="Image files (JPEG, PNG or WebP).")
    parser.add_argument("--config", type=str, default=None, help="Optional YAML config override.")
    parser.add_argument("--preview", action="store_true", help="Also save a display preview.")
    args = parser.parse_args()
    sys.exit(main(args))
