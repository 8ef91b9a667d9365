"""
Snapshot Images and Post-Processing

This module handles:
- RasterImage: float RGBA snapshot buffers (row 0 is the top of the image)
- Box-filter downsampling for supersampled captures
- Binary alpha clipping
- Edge padding (color bleed into transparent texels)
- Normal map / albedo alpha reconciliation

Why edge padding? Texture filtering and mipmapping blend transparent texels
into their opaque neighbours. A transparent texel left at the clear color
(black) produces dark halos around the silhouette; bleeding the neighbour
color outward keeps the blend on-color while alpha stays 0.
"""

from typing import Optional, Tuple, Union
import logging
import numpy as np
from PIL import Image
from scipy import ndimage

from .errors import InvalidInputError

logger = logging.getLogger(__name__)

# Alpha at or above this is treated as opaque after clipping
OPAQUE_ALPHA = 0.5

# Color written to normal texels that are transparent in the albedo
FLAT_NORMAL = np.array([0.5, 0.5, 1.0, 0.0], dtype=np.float32)
FLAT_NORMAL_OPAQUE = np.array([0.5, 0.5, 1.0, 1.0], dtype=np.float32)

# 8-connected neighbourhood, the pixel itself excluded
_NEIGHBOUR_KERNEL = np.array([
    [1, 1, 1],
    [1, 0, 1],
    [1, 1, 1]
], dtype=np.float64)


class RasterImage:
    """
    RGBA image buffer with float pixels in [0, 1].

    Pixels have shape (height, width, 4). An image can be released, which
    drops its pixel buffer; released or zero-sized images are "empty" and
    every processing step treats them as a no-op.
    """

    def __init__(self, pixels: Optional[np.ndarray]):
        """
        Initialize from a float array.

        Args:
            pixels: Array of shape (H, W, 4), values in [0, 1]
        """
        if pixels is not None:
            if pixels.ndim != 3 or pixels.shape[2] != 4:
                raise InvalidInputError("Image pixels must have shape (H, W, 4)")
            pixels = np.ascontiguousarray(pixels, dtype=np.float32)
        self._pixels = pixels

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterImage":
        """
        Create from a numpy array.

        Args:
            array: (H, W, 4) uint8 [0, 255] or float [0, 1] RGBA data

        Returns:
            New RasterImage (data is copied)
        """
        array = np.asarray(array)
        if array.ndim != 3 or array.shape[2] != 4:
            raise InvalidInputError("Image array must have shape (H, W, 4)")
        if array.dtype == np.uint8:
            return cls(array.astype(np.float32) / 255.0)
        return cls(np.clip(array.astype(np.float32), 0.0, 1.0))

    @classmethod
    def filled(cls, width: int, height: int, rgba=(0.0, 0.0, 0.0, 0.0)) -> "RasterImage":
        """Create an image with every pixel set to one color."""
        pixels = np.empty((height, width, 4), dtype=np.float32)
        pixels[:] = np.asarray(rgba, dtype=np.float32)
        return cls(pixels)

    def to_uint8(self) -> np.ndarray:
        """Pixels as (H, W, 4) uint8."""
        if self.is_empty:
            raise RuntimeError("Image has no pixel data")
        return (np.clip(self._pixels, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)

    def to_pil(self) -> Image.Image:
        """Pixels as an RGBA PIL image."""
        return Image.fromarray(self.to_uint8())

    @property
    def pixels(self) -> Optional[np.ndarray]:
        return self._pixels

    @property
    def width(self) -> int:
        return 0 if self._pixels is None else self._pixels.shape[1]

    @property
    def height(self) -> int:
        return 0 if self._pixels is None else self._pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        """Image size as (width, height)."""
        return (self.width, self.height)

    @property
    def alpha(self) -> np.ndarray:
        return self._pixels[:, :, 3]

    @property
    def is_empty(self) -> bool:
        return self._pixels is None or self._pixels.size == 0

    def copy(self) -> "RasterImage":
        return RasterImage(None if self._pixels is None else self._pixels.copy())

    def release(self):
        """Drop the pixel buffer."""
        self._pixels = None

    def downsample(self, factor: int) -> "RasterImage":
        """
        Shrink by an integer factor with a box filter.

        Each channel is resized independently in 32-bit float mode so no
        precision is lost to 8-bit quantization.

        Args:
            factor: Integer scale factor (1 returns a copy)

        Returns:
            New RasterImage of size (width // factor, height // factor)
        """
        if factor <= 1 or self.is_empty:
            return self.copy()

        new_w = max(1, self.width // factor)
        new_h = max(1, self.height // factor)
        channels = []
        for c in range(4):
            channel = Image.fromarray(np.ascontiguousarray(self._pixels[:, :, c]))
            channel = channel.resize((new_w, new_h), Image.Resampling.BOX)
            channels.append(np.asarray(channel, dtype=np.float32))
        return RasterImage(np.clip(np.stack(channels, axis=-1), 0.0, 1.0))

    def __repr__(self) -> str:
        state = "released" if self._pixels is None else f"{self.width}x{self.height}"
        return f"RasterImage({state})"


def alpha_clip(image: RasterImage, threshold: float):
    """
    Hard binary alpha: 1 where alpha >= threshold, else 0. In place.

    Clipping an already clipped image is a no-op.
    """
    if image is None or image.is_empty:
        return
    alpha = image.pixels[:, :, 3]
    image.pixels[:, :, 3] = np.where(alpha >= threshold, 1.0, 0.0)


def edge_pad(image: RasterImage, iterations: int):
    """
    Bleed opaque colors into transparent pixels, in place.

    Each iteration reads the previous iteration's pixels. A transparent
    pixel that has not been colored yet takes the average RGB of its
    in-bounds 8-neighbours that carry color (opaque pixels and pixels
    filled by an earlier iteration). Alpha is left at 0, so k iterations
    color every transparent pixel within Chebyshev distance k of the
    silhouette and nothing beyond it.

    Args:
        image: Alpha-clipped image
        iterations: Number of rings to grow (0 leaves the image unchanged)
    """
    if image is None or image.is_empty or iterations <= 0:
        return

    pixels = image.pixels
    rgb = pixels[:, :, :3].astype(np.float64)
    source = pixels[:, :, 3] >= OPAQUE_ALPHA

    for _ in range(iterations):
        weights = source.astype(np.float64)
        counts = ndimage.convolve(weights, _NEIGHBOUR_KERNEL, mode="constant", cval=0.0)
        targets = ~source & (counts > 0)
        if not targets.any():
            break

        sums = np.stack([
            ndimage.convolve(rgb[:, :, c] * weights, _NEIGHBOUR_KERNEL, mode="constant", cval=0.0)
            for c in range(3)
        ], axis=-1)

        rgb[targets] = sums[targets] / counts[targets][:, np.newaxis]
        source = source | targets

    pixels[:, :, :3] = rgb.astype(np.float32)


def reconcile_normals(albedo: RasterImage, normal: RasterImage):
    """
    Make the normal image agree with the albedo on which texels are real.

    Texels transparent in the albedo become a flat, transparent normal;
    the rest keep their normal color with alpha 1. In place on `normal`.
    """
    if albedo is None or albedo.is_empty or normal is None or normal.is_empty:
        return
    if albedo.size != normal.size:
        raise InvalidInputError(
            f"Normal image size {normal.size} does not match albedo size {albedo.size}"
        )
    transparent = albedo.alpha < OPAQUE_ALPHA
    normal.pixels[:, :, 3] = 1.0
    normal.pixels[transparent] = FLAT_NORMAL


class ImagePostProcessor:
    """
    Per-snapshot cleanup applied before atlas packing.

    Steps, in order:
    1. Alpha clip to exactly 0 or 1
    2. Edge padding (optional)
    3. Normal map alpha reconciliation (when a normal image is present)
    """

    def __init__(
        self,
        alpha_clip_threshold: float = 0.1,
        edge_padding: bool = True,
        edge_padding_iterations: int = 3
    ):
        """
        Initialize the post-processor.

        Args:
            alpha_clip_threshold: Alpha at or above this becomes opaque, (0, 1)
            edge_padding: Enable the color bleed
            edge_padding_iterations: Pixel rings to bleed, [0, 10]
        """
        if not 0.0 < alpha_clip_threshold < 1.0:
            raise InvalidInputError("alpha_clip_threshold must be in (0, 1)")
        if not 0 <= edge_padding_iterations <= 10:
            raise InvalidInputError("edge_padding_iterations must be in [0, 10]")

        self.alpha_clip_threshold = alpha_clip_threshold
        self.edge_padding = edge_padding
        self.edge_padding_iterations = edge_padding_iterations

    @classmethod
    def from_settings(cls, settings) -> "ImagePostProcessor":
        return cls(
            alpha_clip_threshold=settings.alpha_clip_threshold,
            edge_padding=settings.edge_padding,
            edge_padding_iterations=settings.edge_padding_iterations
        )

    def process(
        self,
        albedo: Optional[RasterImage],
        normal: Optional[RasterImage] = None
    ) -> Union[RasterImage, None]:
        """
        Process a snapshot pair in place.

        Args:
            albedo: Albedo snapshot (None or empty is a no-op)
            normal: Optional normal snapshot of the same size

        Returns:
            The albedo image
        """
        if albedo is None or albedo.is_empty:
            return albedo

        if normal is not None and not normal.is_empty and normal.size != albedo.size:
            raise InvalidInputError(
                f"Normal image size {normal.size} does not match albedo size {albedo.size}"
            )

        alpha_clip(albedo, self.alpha_clip_threshold)

        if self.edge_padding:
            edge_pad(albedo, self.edge_padding_iterations)

        if normal is not None:
            reconcile_normals(albedo, normal)

        return albedo
