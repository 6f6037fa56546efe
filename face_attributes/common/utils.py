#!/usr/bin/env python
"""
Geometry helpers shared by the normalization and preview paths.
"""

import math
from typing import Tuple


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 always going up."""
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def fit_scale(width: int, height: int, bound_w: int, bound_h: int) -> float:
    """Uniform scale factor that fits (width, height) inside (bound_w, bound_h)."""
    return min(bound_w / width, bound_h / height)


def fit_size(width: int, height: int, bound: int) -> Tuple[int, int]:
    """
    Scales (width, height) to fit a square bound while preserving aspect ratio.

    Args:
        width: Source width in pixels (must be positive).
        height: Source height in pixels (must be positive).
        bound: Side length of the square to fit into.

    Returns:
        The scaled (width, height), rounded half-up and kept within [1, bound].
    """
    scale = fit_scale(width, height, bound, bound)
    scaled_w = int(clamp(round_half_up(width * scale), 1, bound))
    scaled_h = int(clamp(round_half_up(height * scale), 1, bound))
    return scaled_w, scaled_h


def letterbox_offsets(scaled_w: int, scaled_h: int, canvas: int) -> Tuple[int, int]:
    """
    Offsets that center a scaled image on a square canvas.

    An odd amount of padding leaves the extra pixel on the trailing side
    (right or bottom).
    """
    return (canvas - scaled_w) // 2, (canvas - scaled_h) // 2
