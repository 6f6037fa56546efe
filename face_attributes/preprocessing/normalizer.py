"""
Image normalization for age and gender inference.

Turns an uploaded image into the canonical model input: a float32 tensor of
shape (1, 224, 224, 3) with channel values in [0, 1]. The image is scaled to
fit the square while keeping its aspect ratio and centered on a black canvas.

A separate preview path scales to an arbitrary display bound using the same
rounding rule, without the canvas, normalization or batch axis.
"""

import base64
import io
import logging
import struct
from typing import Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from ..common.constants import TARGET_SIZE
from ..common.errors import DecodeError, DimensionError
from ..common.tensors import TensorBuffer, TensorTracker, default_tracker
from ..common.utils import fit_size, letterbox_offsets

logger = logging.getLogger(__name__)

RawImage = Union[bytes, bytearray, memoryview, Image.Image, np.ndarray]


# Start-of-frame markers carrying the frame size (baseline, progressive, lossless, arithmetic)
_JPEG_SOF_MARKERS = {0xC0, 0xC1, 0xC2, 0xC3, 0xC5, 0xC6, 0xC7, 0xC9, 0xCA, 0xCB, 0xCD, 0xCE, 0xCF}


def _jpeg_declared_size(data: bytes) -> Optional[Tuple[int, int]]:
    pos = 2
    while pos + 4 <= len(data):
        if data[pos] != 0xFF:
            return None
        marker = data[pos + 1]
        if marker == 0xFF:
            pos += 1
            continue
        if marker == 0x01 or 0xD0 <= marker <= 0xD9:
            pos += 2
            continue
        (segment_length,) = struct.unpack(">H", data[pos + 2 : pos + 4])
        if marker in _JPEG_SOF_MARKERS:
            if pos + 9 > len(data):
                return None
            height, width = struct.unpack(">HH", data[pos + 5 : pos + 9])
            return width, height
        pos += 2 + segment_length
    return None


def read_declared_size(data: Union[bytes, bytearray, memoryview]) -> Optional[Tuple[int, int]]:
    """
    Read (width, height) straight from a PNG, JPEG or WebP header.

    Returns None when the header is missing or truncated. No pixel data is
    decoded, so this works on files Pillow refuses to open.
    """
    data = bytes(data)

    if data.startswith(b"\x89PNG\r\n\x1a\n") and data[12:16] == b"IHDR" and len(data) >= 24:
        return struct.unpack(">II", data[16:24])

    if data.startswith(b"\xff\xd8"):
        return _jpeg_declared_size(data)

    if data[:4] == b"RIFF" and data[8:12] == b"WEBP" and len(data) >= 30:
        chunk = data[12:16]
        if chunk == b"VP8 " and data[23:26] == b"\x9d\x01\x2a":
            width, height = struct.unpack("<HH", data[26:30])
            return width & 0x3FFF, height & 0x3FFF
        if chunk == b"VP8L" and data[20] == 0x2F:
            (bits,) = struct.unpack("<I", data[21:25])
            return (bits & 0x3FFF) + 1, ((bits >> 14) & 0x3FFF) + 1
        if chunk == b"VP8X":
            width = int.from_bytes(data[24:27], "little") + 1
            height = int.from_bytes(data[27:30], "little") + 1
            return width, height

    return None


def decode_image(data: Union[bytes, bytearray, memoryview]) -> Image.Image:
    """
    Decode image bytes with Pillow and apply the EXIF orientation.

    Raises:
        DecodeError: If the bytes are not a decodable image container.
        DimensionError: If the header declares a zero width or height.
    """
    try:
        image = Image.open(io.BytesIO(bytes(data)))
        image.load()
        return ImageOps.exif_transpose(image)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        # Pillow refuses zero-sized frames before we can measure them
        size = read_declared_size(data)
        if size is not None and 0 in size:
            raise DimensionError(f"Image has degenerate size {size[0]}x{size[1]}") from e
        raise DecodeError(f"Failed to load image: {e}") from e


def to_rgb_pixels(image: RawImage) -> np.ndarray:
    """
    Convert any supported input into an HxWx3 uint8 RGB array.

    Alpha channels are dropped. Numpy input is expected in RGB order.

    Raises:
        DecodeError: If the input cannot be decoded or has an unsupported layout.
        DimensionError: If the width or height is zero.
    """
    if isinstance(image, (bytes, bytearray, memoryview)):
        image = decode_image(image)

    if isinstance(image, Image.Image):
        width, height = image.size
        if width == 0 or height == 0:
            raise DimensionError(f"Image has degenerate size {width}x{height}")
        if image.mode != "RGB":
            image = image.convert("RGB")
        return np.asarray(image, dtype=np.uint8)

    if not isinstance(image, np.ndarray):
        raise DecodeError(f"Unsupported image input of type {type(image).__name__}")

    if image.ndim == 2:
        image = image[:, :, np.newaxis]
    if image.ndim != 3 or image.shape[2] not in (1, 3, 4):
        raise DecodeError(f"Unsupported pixel array shape {image.shape}")
    if image.dtype != np.uint8:
        raise DecodeError(f"Expected 8-bit pixels, got {image.dtype}")

    height, width = image.shape[:2]
    if width == 0 or height == 0:
        raise DimensionError(f"Image has degenerate size {width}x{height}")

    if image.shape[2] == 1:
        image = np.repeat(image, 3, axis=2)
    return np.ascontiguousarray(image[:, :, :3])


def resize_to_fit(pixels: np.ndarray, bound: int) -> np.ndarray:
    """Resize an RGB array to fit a square bound, preserving aspect ratio."""
    height, width = pixels.shape[:2]
    scaled_w, scaled_h = fit_size(width, height, bound)
    if (scaled_w, scaled_h) == (width, height):
        return pixels.copy()

    # Area averaging when shrinking, bilinear when enlarging.
    interpolation = cv2.INTER_AREA if scaled_w < width else cv2.INTER_LINEAR
    return cv2.resize(pixels, (scaled_w, scaled_h), interpolation=interpolation)


def letterbox(pixels: np.ndarray, size: int = TARGET_SIZE) -> np.ndarray:
    """
    Scale an RGB array to fit a size x size canvas and center it.

    The untouched canvas area stays black (zero), never transparent.
    """
    resized = resize_to_fit(pixels, size)
    scaled_h, scaled_w = resized.shape[:2]
    offset_x, offset_y = letterbox_offsets(scaled_w, scaled_h, size)

    canvas = np.zeros((size, size, 3), dtype=np.uint8)
    canvas[offset_y : offset_y + scaled_h, offset_x : offset_x + scaled_w] = resized
    return canvas


class ImageNormalizer:
    """Produces the canonical model input tensor from raw images."""

    def __init__(self, target_size: int = TARGET_SIZE, tracker: Optional[TensorTracker] = None):
        self.target_size = target_size
        self.tracker = tracker or default_tracker

    def normalize(self, image: RawImage) -> TensorBuffer:
        """
        Normalize an image for inference.

        Args:
            image: Encoded image bytes, a PIL image, or an RGB uint8 array.

        Returns:
            A tensor buffer of shape (1, target_size, target_size, 3), float32
            in [0, 1]. The caller owns it and must dispose it (or hand it to
            the inference engine, which does).

        Raises:
            DecodeError: If the image cannot be decoded.
            DimensionError: If the image has zero width or height.
        """
        pixels = to_rgb_pixels(image)
        canvas = letterbox(pixels, self.target_size)

        tensor = canvas.astype(np.float32) / 255.0
        logger.debug(
            "Normalized %dx%d image to %s", pixels.shape[1], pixels.shape[0], tensor.shape
        )
        return self.tracker.allocate(np.expand_dims(tensor, axis=0), name="normalized_image")


def create_preview(image: RawImage, max_size: int = 400) -> Image.Image:
    """Scale an image to fit a max_size square for display. No padding or normalization."""
    pixels = to_rgb_pixels(image)
    return Image.fromarray(resize_to_fit(pixels, max_size))


def image_to_data_url(image: Union[Image.Image, np.ndarray]) -> str:
    """Encode an image as a PNG data URL."""
    if isinstance(image, np.ndarray):
        image = Image.fromarray(image)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def get_image_dimensions(data: Union[bytes, bytearray, memoryview]) -> Tuple[int, int]:
    """Return (width, height) of encoded image bytes, after EXIF orientation."""
    return decode_image(data).size
