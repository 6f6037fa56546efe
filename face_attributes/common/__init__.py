"""
Common utilities for the face attribute pipeline.

Contains shared functionality used across all modules:
- Owned tensor buffers and the allocation tracker
- Typed errors
- Shared paths and constants
- Geometry helpers for aspect-preserving resizing
"""
