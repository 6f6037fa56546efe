"""
Face attribute inference pipeline.

Estimates age and gender from a single uploaded image using two convolutional
models. The package is organized by concern:
- common: tensor buffers, errors, constants and geometry helpers
- preprocessing: upload validation and image normalization
- pipeline: model handles, registry, loader state machine and inference engine
- api: hosted HTTP variant of the pipeline
"""

__version__ = "0.1.0"
