"""
Unit tests for snapshot post-processing.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from impostor_generator.errors import InvalidInputError
from impostor_generator.imaging import (
    FLAT_NORMAL, FLAT_NORMAL_OPAQUE, ImagePostProcessor, RasterImage,
    alpha_clip, edge_pad
)


def single_dot(size: int = 9, color=(1.0, 0.0, 0.0)) -> RasterImage:
    """Transparent black image with one opaque pixel in the middle."""
    pixels = np.zeros((size, size, 4), dtype=np.float32)
    c = size // 2
    pixels[c, c, :3] = color
    pixels[c, c, 3] = 1.0
    return RasterImage(pixels)


class TestRasterImage(unittest.TestCase):
    """Tests for the image buffer."""

    def test_from_uint8(self):
        array = np.full((2, 3, 4), 255, dtype=np.uint8)
        image = RasterImage.from_array(array)

        assert image.size == (3, 2)
        assert np.allclose(image.pixels, 1.0)

    def test_release(self):
        image = RasterImage.filled(4, 4, (1.0, 1.0, 1.0, 1.0))
        image.release()

        assert image.is_empty
        assert image.width == 0

    def test_downsample_box_filter(self):
        pixels = np.zeros((4, 4, 4), dtype=np.float32)
        pixels[:2, :2] = 1.0
        image = RasterImage(pixels).downsample(2)

        assert image.size == (2, 2)
        assert np.allclose(image.pixels[0, 0], 1.0)
        assert np.allclose(image.pixels[1, 1], 0.0)

    def test_downsample_averages(self):
        pixels = np.zeros((2, 2, 4), dtype=np.float32)
        pixels[0, 0, 3] = 1.0
        image = RasterImage(pixels).downsample(2)

        assert np.isclose(image.pixels[0, 0, 3], 0.25, atol=1e-5)

    def test_bad_shape(self):
        with self.assertRaises(InvalidInputError):
            RasterImage(np.zeros((4, 4, 3), dtype=np.float32))


class TestAlphaClip(unittest.TestCase):
    """Tests for binary alpha."""

    def test_binary(self):
        pixels = np.zeros((1, 4, 4), dtype=np.float32)
        pixels[0, :, 3] = [0.0, 0.05, 0.1, 0.7]
        image = RasterImage(pixels)
        alpha_clip(image, 0.1)

        assert list(image.alpha[0]) == [0.0, 0.0, 1.0, 1.0]

    def test_idempotent(self):
        rng = np.random.default_rng(3)
        image = RasterImage(rng.random((8, 8, 4)).astype(np.float32))
        alpha_clip(image, 0.3)
        once = image.pixels.copy()
        alpha_clip(image, 0.3)

        assert np.array_equal(once, image.pixels)

    def test_empty_image_is_noop(self):
        image = RasterImage(None)
        alpha_clip(image, 0.5)
        edge_pad(image, 3)
        assert image.is_empty


class TestEdgePadding(unittest.TestCase):
    """Tests for color bleed into transparent texels."""

    def test_chebyshev_reach(self):
        """k iterations color exactly the ring of Chebyshev distance <= k."""
        image = single_dot()
        edge_pad(image, 2)

        rgb = image.pixels[:, :, :3]
        for y in range(9):
            for x in range(9):
                reach = max(abs(x - 4), abs(y - 4))
                if reach <= 2:
                    assert np.allclose(rgb[y, x], [1.0, 0.0, 0.0]), (x, y)
                else:
                    assert np.allclose(rgb[y, x], 0.0), (x, y)

    def test_alpha_untouched(self):
        image = single_dot()
        edge_pad(image, 3)

        assert image.alpha.sum() == 1.0

    def test_zero_iterations(self):
        image = single_dot()
        before = image.pixels.copy()
        edge_pad(image, 0)

        assert np.array_equal(before, image.pixels)

    def test_average_of_neighbours(self):
        pixels = np.zeros((1, 3, 4), dtype=np.float32)
        pixels[0, 0] = [1.0, 0.0, 0.0, 1.0]
        pixels[0, 2] = [0.0, 0.0, 1.0, 1.0]
        image = RasterImage(pixels)
        edge_pad(image, 1)

        assert np.allclose(image.pixels[0, 1, :3], [0.5, 0.0, 0.5])

    def test_processor_padding_disabled(self):
        image = single_dot()
        ImagePostProcessor(edge_padding=False).process(image)

        assert image.pixels[:, :, :3].sum() == 1.0


class TestImagePostProcessor(unittest.TestCase):
    """Tests for the combined post-processing step."""

    def test_normal_reconciliation(self):
        albedo = single_dot()
        normal = RasterImage.filled(9, 9, (0.2, 0.3, 0.9, 1.0))
        ImagePostProcessor().process(albedo, normal)

        assert np.allclose(normal.pixels[4, 4], [0.2, 0.3, 0.9, 1.0])
        assert np.allclose(normal.pixels[0, 0], FLAT_NORMAL)

    def test_flat_normal_constants(self):
        assert np.allclose(FLAT_NORMAL[:3], FLAT_NORMAL_OPAQUE[:3])
        assert FLAT_NORMAL[3] == 0.0

    def test_size_mismatch(self):
        with self.assertRaises(InvalidInputError):
            ImagePostProcessor().process(single_dot(9), single_dot(5))

    def test_threshold_range(self):
        with self.assertRaises(InvalidInputError):
            ImagePostProcessor(alpha_clip_threshold=0.0)
        with self.assertRaises(InvalidInputError):
            ImagePostProcessor(edge_padding_iterations=11)

    def test_none_is_noop(self):
        assert ImagePostProcessor().process(None) is None


if __name__ == "__main__":
    unittest.main(verbosity=2)
