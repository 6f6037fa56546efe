#!/usr/bin/env python
"""
Export Script for Age and Gender Models to ONNX

Builds the torch age and gender networks (from checkpoints when present) and
exports both to ONNX so the pipeline can run with the onnx backend.
"""
import argparse
import sys
from pathlib import Path

# Add project root to Python path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(PROJECT_ROOT))

from face_attributes.config import load_config
from face_attributes.pipeline.torch_models import build_torch_model, export_to_onnx


def main(args):
    """Main export function."""
    print("--- Age/Gender ONNX Exporter ---")
    config = load_config(args.config)
    model_config = config["model"]

    targets = [
        ("age", model_config["AGE_CHECKPOINT_PATH"], model_config["ONNX_AGE_PATH"], 0),
        ("gender", model_config["GENDER_CHECKPOINT_PATH"], model_config["ONNX_GENDER_PATH"], 1),
    ]
    for kind, checkpoint_path, onnx_path, seed_offset in targets:
        model = build_torch_model(kind, checkpoint_path, seed=model_config["SEED"] + seed_offset)
        exported = export_to_onnx(model, onnx_path, opset=args.opset)
        model.dispose()
        print(f"Exported {kind} model to: {exported}")

    print("\n--- Exporter finished ---")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Export the age and gender models to ONNX.")
    parser.add_argument("--config", type=str, default=None, help="Optional YAML config override.")
    parser.add_argument("--opset", type=int, default=12, help="ONNX opset version. Default: 12")
    args = parser.parse_args()
    main(args)
