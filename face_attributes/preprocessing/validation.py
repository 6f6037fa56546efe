"""
Upload validation performed before any decode attempt.
"""

import math
from enum import Enum
from typing import Iterable, Optional

from ..common.errors import ValidationError
from ..config import VALIDATION_CONFIG

BYTES_PER_MB = 1024 * 1024
MAX_FILE_SIZE_BYTES = VALIDATION_CONFIG["MAX_FILE_SIZE_MB"] * BYTES_PER_MB
ALLOWED_CONTENT_TYPES = tuple(VALIDATION_CONFIG["ALLOWED_CONTENT_TYPES"])

PNG_MAGIC = b"\x89PNG"
JPEG_MAGIC = b"\xff\xd8\xff"
RIFF_MAGIC = b"RIFF"
WEBP_MAGIC = b"WEBP"


class ImageFormat(Enum):
    """Image containers accepted by the pipeline."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"


def format_file_size(num_bytes: int) -> str:
    """Render a byte count for humans, e.g. 1536 -> '1.5 KB'."""
    if num_bytes == 0:
        return "0 Bytes"

    sizes = ["Bytes", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(num_bytes, 1024))), len(sizes) - 1)
    value = f"{num_bytes / 1024 ** i:.2f}".rstrip("0").rstrip(".")
    return f"{value} {sizes[i]}"


def sniff_format(data: bytes) -> Optional[ImageFormat]:
    """Identify the image container from its leading bytes."""
    if data[:4] == PNG_MAGIC:
        return ImageFormat.PNG
    if data[:3] == JPEG_MAGIC:
        return ImageFormat.JPEG
    if data[:4] == RIFF_MAGIC and data[8:12] == WEBP_MAGIC:
        return ImageFormat.WEBP
    return None


def validate_upload(
    data: bytes,
    content_type: Optional[str] = None,
    max_bytes: int = MAX_FILE_SIZE_BYTES,
    allowed_content_types: Iterable[str] = ALLOWED_CONTENT_TYPES,
) -> ImageFormat:
    """
    Check an upload before it reaches the decoder.

    Size is checked first, then the declared content type (skipped when
    None), then the magic bytes.

    Args:
        data: Raw file contents.
        content_type: MIME type declared by the client, if any.
        max_bytes: Largest accepted file size.
        allowed_content_types: Accepted MIME types (case-insensitive).

    Returns:
        The detected image format.

    Raises:
        ValidationError: If any check fails.
    """
    if len(data) > max_bytes:
        max_mb = max_bytes / BYTES_PER_MB
        raise ValidationError(
            f"File size too large. Maximum size is {max_mb:g}MB. "
            f"Current size: {format_file_size(len(data))}"
        )

    if content_type is not None:
        allowed = {t.lower() for t in allowed_content_types}
        if content_type.lower() not in allowed:
            raise ValidationError("Invalid file format. Supported formats: JPEG, PNG, WebP")

    image_format = sniff_format(data)
    if image_format is None:
        raise ValidationError("Invalid image format")
    return image_format
