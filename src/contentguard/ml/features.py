"""Heuristic image statistics computed directly from pixel data.

The coefficients below feed the threshold gates in ``evaluators``; changing
any of them shifts which images get flagged.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

import numpy as np

from contentguard.ml.preprocessing import to_pixel_buffer

if TYPE_CHECKING:
    from numpy.typing import NDArray

SOBEL_X: NDArray[np.float64] = np.array([[-1.0, 0.0, 1.0], [-2.0, 0.0, 2.0], [-1.0, 0.0, 1.0]])
SOBEL_Y: NDArray[np.float64] = np.array([[-1.0, -2.0, -1.0], [0.0, 0.0, 0.0], [1.0, 2.0, 1.0]])

DOMINANCE_OFFSET = 0.15


@dataclass(frozen=True)
class ImageStatistics:
    """Fixed feature vector, every field clamped to [0, 1]."""

    red_dominance: float
    green_dominance: float
    white_dominance: float
    contrast: float
    sharpness: float
    small_object_density: float
    linear_shapes: float
    metallic: float
    texture: float
    color_variety: float
    saturation: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def _correlate3x3(image: NDArray[np.float64], kernel: NDArray[np.float64]) -> NDArray[np.float64]:
    """3x3 cross-correlation with zero padding, output has the input's shape."""
    height, width = image.shape
    padded = np.pad(image, 1, mode="constant", constant_values=0.0)
    out = np.zeros_like(image)
    for dy in range(3):
        for dx in range(3):
            weight = kernel[dy, dx]
            if weight != 0.0:
                out += weight * padded[dy : dy + height, dx : dx + width]
    return out


def gradient_magnitude(gray: NDArray[np.float64]) -> NDArray[np.float64]:
    """Per-pixel Sobel gradient magnitude of a 2-D grayscale image."""
    gx = _correlate3x3(gray, SOBEL_X)
    gy = _correlate3x3(gray, SOBEL_Y)
    return np.sqrt(gx * gx + gy * gy)


def extract_statistics(image: NDArray[np.generic]) -> ImageStatistics:
    """Validate an RGB buffer and derive its heuristic feature vector.

    Args:
        image: HxWx3 array, normalized float or uint8.

    Raises:
        InvalidInput: If the buffer is malformed or has zero area.
    """
    return compute_statistics(to_pixel_buffer(image))


def compute_statistics(buffer: NDArray[np.float64]) -> ImageStatistics:
    """Feature vector of a buffer already returned by ``to_pixel_buffer``."""
    red_mean = float(buffer[:, :, 0].mean())
    green_mean = float(buffer[:, :, 1].mean())
    blue_mean = float(buffer[:, :, 2].mean())
    total_mean = (red_mean + green_mean + blue_mean) / 3

    color_variance = (
        (red_mean - total_mean) ** 2 + (green_mean - total_mean) ** 2 + (blue_mean - total_mean) ** 2
    ) / 3

    # Contrast is the spread of every channel value, not of luminance.
    contrast_raw = math.sqrt(float(np.mean((buffer - buffer.mean()) ** 2)))

    gray = buffer.mean(axis=2)
    magnitude = gradient_magnitude(gray)
    sharpness_raw = float(magnitude.mean())
    texture_raw = math.sqrt(float(np.mean((magnitude - sharpness_raw) ** 2)))

    def dominance(channel_mean: float) -> float:
        if total_mean <= 0:
            return 0.0
        return clamp01((channel_mean / total_mean - DOMINANCE_OFFSET) * 2)

    return ImageStatistics(
        red_dominance=dominance(red_mean),
        green_dominance=dominance(green_mean),
        white_dominance=clamp01(min(red_mean, green_mean, blue_mean) * 1.5),
        contrast=clamp01(contrast_raw * 3),
        sharpness=clamp01(sharpness_raw * 20),
        small_object_density=clamp01(sharpness_raw * 2.5),
        linear_shapes=clamp01(contrast_raw * 1.5),
        metallic=clamp01(((blue_mean + red_mean) / 2) * 1.5),
        texture=clamp01(texture_raw * 25),
        color_variety=clamp01(math.sqrt(color_variance) * 4),
        saturation=clamp01(
            (abs(red_mean - green_mean) + abs(green_mean - blue_mean) + abs(blue_mean - red_mean)) / 3 * 3
        ),
    )
