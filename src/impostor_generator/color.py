"""
Color Space Conversion

Handles:
- sRGB to Linear conversion (vertex colors before lighting)
- Linear to sRGB conversion (lit colors before they are stored in a snapshot)

Color Space Background:
- Vertex colors and PNG snapshots are stored in sRGB (perceptual) space
- Lighting sums are only physically meaningful in Linear space
- Lighting sRGB values directly produces over-dark shading and harsh falloff
"""

import numpy as np
from numba import njit, prange


@njit(cache=True)
def _srgb_to_linear_component(c: float) -> float:
    """
    Convert a single sRGB component to Linear.

    The sRGB standard uses a piecewise function:
    - Linear below threshold (0.04045)
    - Gamma curve above threshold
    """
    if c <= 0.04045:
        return c / 12.92
    else:
        return ((c + 0.055) / 1.055) ** 2.4


@njit(cache=True)
def _linear_to_srgb_component(c: float) -> float:
    if c <= 0.0031308:
        return c * 12.92
    else:
        return 1.055 * (c ** (1.0 / 2.4)) - 0.055


@njit(cache=True, parallel=True)
def srgb_to_linear(colors: np.ndarray) -> np.ndarray:
    """
    Convert sRGB colors to Linear color space.

    Args:
        colors: Array of shape (N, 3) or (N, 4) with float sRGB values [0, 1]

    Returns:
        float32 array of the same shape; alpha is copied unchanged
    """
    n = colors.shape[0]
    channels = colors.shape[1]
    result = np.empty((n, channels), dtype=np.float32)

    for i in prange(n):
        for c in range(min(channels, 3)):  # Only convert RGB, not alpha
            value = max(0.0, min(1.0, colors[i, c]))
            result[i, c] = _srgb_to_linear_component(value)

        if channels == 4:
            result[i, 3] = colors[i, 3]

    return result


@njit(cache=True, parallel=True)
def linear_to_srgb(colors: np.ndarray) -> np.ndarray:
    """
    Convert Linear colors to sRGB color space.

    Values above 1 (over-lit texels) are clamped before encoding.

    Args:
        colors: Array of shape (N, 3) or (N, 4) with float Linear values

    Returns:
        float32 array of the same shape with sRGB values [0, 1]
    """
    n = colors.shape[0]
    channels = colors.shape[1]
    result = np.empty((n, channels), dtype=np.float32)

    for i in prange(n):
        for c in range(min(channels, 3)):
            linear_val = max(0.0, min(1.0, colors[i, c]))
            result[i, c] = _linear_to_srgb_component(linear_val)

        if channels == 4:
            result[i, 3] = max(0.0, min(1.0, colors[i, 3]))

    return result


def normalize_colors(colors: np.ndarray) -> np.ndarray:
    """
    Bring a color array to float RGBA in [0, 1].

    Args:
        colors: (N, 3) or (N, 4) array, uint8 [0, 255] or float [0, 1]

    Returns:
        (N, 4) float32 array, alpha 1 where none was given
    """
    colors = np.asarray(colors)
    if colors.ndim != 2 or colors.shape[1] not in (3, 4):
        raise ValueError(f"Colors must have shape (N, 3) or (N, 4), got {colors.shape}")

    if colors.dtype == np.uint8:
        result = colors.astype(np.float32) / 255.0
    else:
        result = np.clip(colors.astype(np.float32), 0.0, 1.0)

    if result.shape[1] == 3:
        result = np.column_stack([result, np.ones(len(result), dtype=np.float32)])
    return result
