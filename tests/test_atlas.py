"""
Unit tests for single-row atlas packing.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from impostor_generator.atlas import AtlasPacker, PlacementRect
from impostor_generator.errors import InvalidInputError, PackingError
from impostor_generator.imaging import RasterImage


def solid(width: int, height: int, value: float) -> RasterImage:
    return RasterImage.filled(width, height, (value, value, value, 1.0))


class TestLayout(unittest.TestCase):
    """Tests for rect placement."""

    def test_running_sum(self):
        rects = AtlasPacker().layout([3, 5, 2], 8)

        assert [r.x for r in rects] == [0, 3, 8]
        assert [r.width for r in rects] == [3, 5, 2]
        assert all(r.y == 0 and r.height == 8 for r in rects)

    def test_no_overlap(self):
        rects = AtlasPacker().layout([4, 4, 7, 1], 4)
        for i, a in enumerate(rects):
            for b in rects[i + 1:]:
                assert not a.overlaps(b)

    def test_uv_range(self):
        rect = PlacementRect(10, 0, 30, 16)
        assert rect.uv_range(40) == (0.25, 1.0)


class TestPack(unittest.TestCase):
    """Tests for pixel packing."""

    def test_atlas_size(self):
        images = [solid(3, 4, 0.1), solid(5, 4, 0.2), solid(2, 4, 0.3)]
        layout = AtlasPacker().pack(images)

        assert layout.width == 10
        assert layout.height == 4
        assert layout.albedo.size == (10, 4)
        assert layout.normal is None

    def test_pixels_land_in_rects(self):
        images = [solid(3, 4, 0.1), solid(5, 4, 0.2)]
        layout = AtlasPacker().pack(images)
        pixels = layout.albedo.pixels

        assert np.allclose(pixels[:, 0:3, 0], 0.1)
        assert np.allclose(pixels[:, 3:8, 0], 0.2)

    def test_rows_keep_orientation(self):
        """Row 0 of a snapshot stays row 0 of the atlas."""
        pixels = np.zeros((2, 2, 4), dtype=np.float32)
        pixels[0] = 1.0
        layout = AtlasPacker().pack([RasterImage(pixels)])

        assert np.allclose(layout.albedo.pixels[0], 1.0)
        assert np.allclose(layout.albedo.pixels[1], 0.0)

    def test_normal_atlas(self):
        albedo = [solid(3, 4, 1.0), solid(2, 4, 1.0)]
        normals = [RasterImage.filled(3, 4, (0.5, 0.5, 1.0, 1.0)),
                   RasterImage.filled(2, 4, (0.5, 0.5, 1.0, 1.0))]
        layout = AtlasPacker().pack(albedo, normals)

        assert layout.normal.size == layout.albedo.size
        assert np.allclose(layout.normal.pixels[:, :, 2], 1.0)

    def test_idempotent(self):
        images = [solid(3, 4, 0.1), solid(5, 4, 0.7)]
        first = AtlasPacker().pack(images)
        second = AtlasPacker().pack(images)

        assert first.rects == second.rects
        assert np.array_equal(first.albedo.pixels, second.albedo.pixels)

    def test_mixed_heights(self):
        with self.assertRaises(InvalidInputError):
            AtlasPacker().pack([solid(3, 4, 0.1), solid(3, 5, 0.1)])

    def test_zero_area(self):
        empty = RasterImage(None)
        with self.assertRaises(PackingError) as ctx:
            AtlasPacker().pack([empty])
        assert ctx.exception.snapshots == [empty]

    def test_no_images(self):
        with self.assertRaises(PackingError):
            AtlasPacker().pack([])

    def test_normal_count_mismatch(self):
        with self.assertRaises(InvalidInputError):
            AtlasPacker().pack([solid(3, 4, 0.1), solid(3, 4, 0.1)], [solid(3, 4, 0.5)])

    def test_release(self):
        layout = AtlasPacker().pack([solid(3, 4, 0.1)], [solid(3, 4, 0.5)])
        layout.release()

        assert layout.albedo.is_empty
        assert layout.normal.is_empty


if __name__ == "__main__":
    unittest.main(verbosity=2)
