"""Pixel buffer validation and normalization.

Decoding, EXIF handling, and resizing happen before the engine is called.
This module only checks that a decoded buffer is usable and brings it to
normalized float64 intensities in [0, 1].
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from contentguard.errors import InvalidInput

if TYPE_CHECKING:
    from numpy.typing import NDArray

UINT8_MAX: float = 255.0


def to_pixel_buffer(image: NDArray[np.generic], max_pixels: int | None = None) -> NDArray[np.float64]:
    """Validate an RGB image and return it as normalized float64.

    Args:
        image: HxWx3 array, either uint8 (0-255) or floating point (0.0-1.0).
        max_pixels: Optional upper bound on H*W.

    Returns:
        HxWx3 float64 array with values in [0, 1].

    Raises:
        InvalidInput: If the shape, dtype, or value range is unusable.
    """
    if not isinstance(image, np.ndarray):
        raise InvalidInput(f"Expected a numpy array, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] != 3:
        raise InvalidInput(f"Expected an HxWx3 RGB buffer, got shape {image.shape}")

    height, width = image.shape[0], image.shape[1]
    if height == 0 or width == 0:
        raise InvalidInput("Pixel buffer has zero area")
    if max_pixels is not None and height * width > max_pixels:
        raise InvalidInput(f"Pixel buffer has {height * width} pixels, limit is {max_pixels}")

    if image.dtype == np.uint8:
        return image.astype(np.float64) / UINT8_MAX

    if not np.issubdtype(image.dtype, np.floating):
        raise InvalidInput(f"Unsupported pixel dtype: {image.dtype}")

    buffer = image.astype(np.float64, copy=False)
    if not np.all(np.isfinite(buffer)):
        raise InvalidInput("Pixel buffer contains non-finite values")
    if buffer.min() < 0.0 or buffer.max() > 1.0:
        raise InvalidInput("Float pixel buffer must be normalized to [0, 1]")
    return buffer
