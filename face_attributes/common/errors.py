"""
Typed errors for the inference pipeline.
"""


class FaceAttributesError(Exception):
    """Base class for pipeline errors."""


class ValidationError(FaceAttributesError):
    """Raised when an upload has the wrong size or format. The caller should re-prompt."""


class DecodeError(FaceAttributesError):
    """Raised when image bytes cannot be decoded."""


class DimensionError(FaceAttributesError):
    """Raised when an image has zero width or height."""


class NotLoadedError(FaceAttributesError):
    """Raised when inference is attempted without a ready model registry."""


class LoadError(FaceAttributesError):
    """Raised when model construction or warm-up fails."""


class LoadTimeoutError(LoadError, TimeoutError):
    """Raised when waiting for the models exceeds the deadline."""


class PredictionError(FaceAttributesError):
    """Raised when a forward pass fails. Buffers are released before it propagates."""


class BufferDisposedError(FaceAttributesError):
    """Raised when a disposed tensor buffer is accessed."""
