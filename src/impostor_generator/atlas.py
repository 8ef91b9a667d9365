"""
Single-Row Atlas Packing

Snapshots are placed left to right in capture order, all sharing one
height. There is no rotation, no reordering and no 2D bin packing: the
placement of snapshot i is a closed-form running sum of widths, which
keeps the mesh UV mapping trivial and lets the atlas index double as the
view index.

Rect coordinates are texture-space pixels: x from the left edge, y from the
bottom edge (v = 0).
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import logging
import numpy as np

from .errors import InvalidInputError, PackingError
from .imaging import RasterImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlacementRect:
    """Placement of one snapshot inside the atlas, in pixels."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    def overlaps(self, other: "PlacementRect") -> bool:
        return (self.x < other.right and other.x < self.right and
                self.y < other.y + other.height and other.y < self.y + self.height)

    def uv_range(self, atlas_width: int) -> tuple:
        """Normalized (u_min, u_max) of this rect."""
        return (self.x / atlas_width, self.right / atlas_width)


class AtlasImage(RasterImage):
    """Packed atlas; same pixel layout as RasterImage."""

    @classmethod
    def blank(cls, width: int, height: int) -> "AtlasImage":
        return cls(np.zeros((height, width, 4), dtype=np.float32))


@dataclass
class AtlasLayout:
    """
    Result of packing.

    Attributes:
        albedo: Albedo atlas
        normal: Normal atlas, or None
        rects: Placement rects, index-aligned with the input images
        width: Atlas width in pixels (sum of input widths)
        height: Atlas height in pixels
    """

    albedo: AtlasImage
    normal: Optional[AtlasImage] = None
    rects: List[PlacementRect] = field(default_factory=list)
    width: int = 0
    height: int = 0

    def release(self):
        if self.albedo is not None:
            self.albedo.release()
        if self.normal is not None:
            self.normal.release()


class AtlasPacker:
    """
    Packs processed snapshots into one row.

    Example:
        layout = AtlasPacker().pack(albedo_images, normal_images)
        layout.rects[2].x  # sum of the first two widths
    """

    def layout(self, widths: Sequence[int], height: int) -> List[PlacementRect]:
        """
        Compute placement rects without touching pixels.

        Args:
            widths: Snapshot widths in capture order
            height: Shared snapshot height

        Returns:
            One rect per width
        """
        rects = []
        x = 0
        for w in widths:
            rects.append(PlacementRect(x, 0, int(w), int(height)))
            x += int(w)
        return rects

    def pack(
        self,
        albedo_images: Sequence[RasterImage],
        normal_images: Optional[Sequence[RasterImage]] = None
    ) -> AtlasLayout:
        """
        Pack snapshots into atlases.

        Args:
            albedo_images: Processed albedo snapshots in capture order
            normal_images: Optional normal snapshots, one per albedo image

        Returns:
            AtlasLayout with albedo (and normal) atlas plus placement rects

        Raises:
            InvalidInputError: Heights differ, or normal list does not match
            PackingError: The atlas would have zero area
        """
        albedo_images = list(albedo_images)
        normals = list(normal_images) if normal_images else []

        heights = {img.height for img in albedo_images if not img.is_empty}
        if len(heights) > 1:
            raise InvalidInputError(f"All snapshots must share one height, got {sorted(heights)}")

        total_width = sum(img.width for img in albedo_images)
        height = heights.pop() if heights else 0

        if total_width <= 0 or height <= 0:
            raise PackingError(
                f"No atlas produced: total width {total_width}, height {height}",
                snapshots=albedo_images
            )

        if normals and len(normals) != len(albedo_images):
            raise InvalidInputError(
                f"Got {len(normals)} normal snapshots for {len(albedo_images)} albedo snapshots"
            )
        for alb, nrm in zip(albedo_images, normals):
            if nrm.size != alb.size:
                raise InvalidInputError(
                    f"Normal snapshot {nrm.size} does not match albedo {alb.size}"
                )

        rects = self.layout([img.width for img in albedo_images], height)

        albedo_atlas = AtlasImage.blank(total_width, height)
        normal_atlas = AtlasImage.blank(total_width, height) if normals else None

        for i, rect in enumerate(rects):
            self._blit(albedo_atlas, albedo_images[i], rect)
            if normal_atlas is not None:
                self._blit(normal_atlas, normals[i], rect)

        logger.info(
            "Packed %d snapshots into %dx%d atlas%s",
            len(rects), total_width, height,
            " (+normal)" if normal_atlas is not None else ""
        )

        return AtlasLayout(
            albedo=albedo_atlas,
            normal=normal_atlas,
            rects=rects,
            width=total_width,
            height=height
        )

    @staticmethod
    def _blit(atlas: AtlasImage, image: RasterImage, rect: PlacementRect):
        if image.is_empty:
            return
        # rect.y counts from the bottom; rows count from the top
        top = atlas.height - (rect.y + rect.height)
        atlas.pixels[top:top + rect.height, rect.x:rect.right] = image.pixels
