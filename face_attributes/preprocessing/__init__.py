"""
Preprocessing module for uploaded images.

Contains utilities for:
- Validating uploads by size, declared content type and magic bytes
- Decoding and normalizing images into the canonical model input tensor
- Building display previews that share the same resize rule
"""
