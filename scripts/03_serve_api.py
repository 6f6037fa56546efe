#!/usr/bin/env python
"""
Serve the prediction API with uvicorn.

Models start loading in the background; poll GET /api/models/status until
isLoaded is true before sending predictions.
"""
import argparse
import logging
import sys
from pathlib import Path

import uvicorn

# Add project root to Python path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(PROJECT_ROOT))

from face_attributes.api.app import create_app
from face_attributes.config import load_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)


def main(args):
    config = load_config(args.config)
    app = create_app(config=config)
    uvicorn.run(
        app,
        host=args.host or config["api"]["HOST"],
        port=args.port or config["api"]["PORT"],
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Serve the age/gender prediction API.")
    parser.add_argument("--config", type=str, default=None, help="Optional YAML config override.")
    parser.add_argument("--host", type=str, default=None, help="Bind address.")
    parser.add_argument("--port", type=int, default=None, help="Bind port.")
    args = parser.parse_args()
    main(args)
