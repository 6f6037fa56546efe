"""
Inference pipeline for age and gender estimation.

Contains:
- Model protocols and result types
- Torch and ONNX model handles
- The model registry, the loader state machine and the inference engine
"""
