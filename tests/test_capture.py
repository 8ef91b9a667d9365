"""
Unit tests for the capture loop.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from impostor_generator.capture import CaptureOrchestrator
from impostor_generator.config import HorizontalCrossSection, ImpostorSettings
from impostor_generator.errors import CaptureCancelled, InvalidInputError, RenderError
from impostor_generator.imaging import FLAT_NORMAL, RasterImage
from impostor_generator.projection import Bounds3D
from impostor_generator.renderer import MaterialOverride, Renderer


UNIT_CUBE = Bounds3D((0.0, 0.5, 0.0), (0.5, 0.5, 0.5))


class FakeRenderer(Renderer):
    """Returns a half-opaque image per capture and records what it did."""

    def __init__(self, normals: bool = True, fail_at: int = -1):
        self.normals = normals
        self.fail_at = fail_at
        self.calls = []
        self.images = []
        self.sessions_opened = 0
        self.sessions_closed = 0
        self.lighting_applied = 0

    @property
    def supports_normals(self) -> bool:
        return self.normals

    def begin_session(self):
        self.sessions_opened += 1
        return "state"

    def end_session(self, state):
        assert state == "state"
        self.sessions_closed += 1

    def apply_lighting(self, lighting):
        self.lighting_applied += 1

    def capture(self, view, target_height, supersampling=1, material=MaterialOverride.ALBEDO):
        if len(self.calls) == self.fail_at:
            raise RenderError("boom")
        self.calls.append((view.index, material))

        width, height = view.pixel_size(target_height)
        pixels = np.zeros((height, width, 4), dtype=np.float32)
        if material == MaterialOverride.NORMAL:
            pixels[:] = (0.1, 0.2, 0.9, 1.0)
        else:
            pixels[:, : width // 2] = (0.8, 0.4, 0.2, 1.0)
        image = RasterImage(pixels)
        self.images.append(image)
        return image


class TestCaptureRun(unittest.TestCase):
    """Tests for a successful capture."""

    def test_texture_set(self):
        renderer = FakeRenderer()
        settings = ImpostorSettings(views=4, atlas_height=16)
        texture_set = CaptureOrchestrator(renderer, settings).run(UNIT_CUBE)

        assert texture_set.view_count == 4
        assert len(texture_set.rects) == 4
        assert texture_set.atlas_height == 16
        assert texture_set.atlas_width == sum(r.width for r in texture_set.rects)
        assert texture_set.normal is not None
        assert not texture_set.has_top_down
        assert texture_set.bounds == UNIT_CUBE

    def test_one_session(self):
        renderer = FakeRenderer()
        CaptureOrchestrator(renderer, ImpostorSettings(views=4, atlas_height=8)).run(UNIT_CUBE)

        assert renderer.sessions_opened == 1
        assert renderer.sessions_closed == 1
        assert renderer.lighting_applied == 1

    def test_albedo_and_normal_per_view(self):
        renderer = FakeRenderer()
        CaptureOrchestrator(renderer, ImpostorSettings(views=3, atlas_height=8)).run(UNIT_CUBE)

        materials = [m for _, m in renderer.calls]
        assert materials.count(MaterialOverride.ALBEDO) == 3
        assert materials.count(MaterialOverride.NORMAL) == 3

    def test_intermediates_released(self):
        renderer = FakeRenderer()
        CaptureOrchestrator(renderer, ImpostorSettings(views=4, atlas_height=8)).run(UNIT_CUBE)

        assert all(image.is_empty for image in renderer.images)

    def test_progress(self):
        reports = []
        settings = ImpostorSettings(views=4, atlas_height=8, include_top_down=True)
        CaptureOrchestrator(
            FakeRenderer(), settings,
            on_progress=lambda done, total, label: reports.append((done, total, label))
        ).run(UNIT_CUBE)

        assert [r[0] for r in reports] == [1, 2, 3, 4, 5]
        assert all(r[1] == 5 for r in reports)
        assert reports[0][2] == "View 1/4"
        assert reports[-1][2] == "Top-down view"

    def test_cross_sections_capture_top_down(self):
        settings = ImpostorSettings(views=4, atlas_height=8,
                                    cross_sections=[HorizontalCrossSection(0.5)])
        texture_set = CaptureOrchestrator(FakeRenderer(), settings).run(UNIT_CUBE)

        assert len(texture_set.rects) == 5
        assert texture_set.view_count == 4
        assert texture_set.has_top_down

    def test_front_face_only(self):
        settings = ImpostorSettings(views=8, atlas_height=8, front_face_only=True)
        texture_set = CaptureOrchestrator(FakeRenderer(), settings).run(UNIT_CUBE)

        assert texture_set.view_count == 4

    def test_no_normal_map(self):
        renderer = FakeRenderer()
        settings = ImpostorSettings(views=2, atlas_height=8, generate_normal_map=False)
        texture_set = CaptureOrchestrator(renderer, settings).run(UNIT_CUBE)

        assert texture_set.normal is None
        assert all(m == MaterialOverride.ALBEDO for _, m in renderer.calls)

    def test_alpha_is_binary(self):
        texture_set = CaptureOrchestrator(
            FakeRenderer(), ImpostorSettings(views=2, atlas_height=8)
        ).run(UNIT_CUBE)

        alpha = texture_set.albedo.alpha
        assert set(np.unique(alpha)) <= {0.0, 1.0}


class TestNormalSupport(unittest.TestCase):
    """Renderers without a normal pass."""

    def test_flat_normals_substituted(self):
        renderer = FakeRenderer(normals=False)
        settings = ImpostorSettings(views=2, atlas_height=8)
        with self.assertLogs("impostor_generator.capture", level="WARNING"):
            texture_set = CaptureOrchestrator(renderer, settings).run(UNIT_CUBE)

        assert all(m == MaterialOverride.ALBEDO for _, m in renderer.calls)
        opaque = texture_set.albedo.alpha >= 0.5
        normal = texture_set.normal.pixels
        assert np.allclose(normal[opaque], [0.5, 0.5, 1.0, 1.0])
        assert np.allclose(normal[~opaque], FLAT_NORMAL)

    def test_required_normals(self):
        renderer = FakeRenderer(normals=False)
        orchestrator = CaptureOrchestrator(
            renderer, ImpostorSettings(views=2, atlas_height=8), require_normals=True
        )
        with self.assertRaises(InvalidInputError):
            orchestrator.run(UNIT_CUBE)

        assert renderer.calls == []
        assert renderer.sessions_opened == 0


class TestCaptureFailure(unittest.TestCase):
    """Failures leave nothing behind."""

    def test_render_error_releases(self):
        renderer = FakeRenderer(fail_at=3)
        with self.assertRaises(RenderError):
            CaptureOrchestrator(renderer, ImpostorSettings(views=4, atlas_height=8)).run(UNIT_CUBE)

        assert len(renderer.images) == 3
        assert all(image.is_empty for image in renderer.images)
        assert renderer.sessions_closed == 1

    def test_cancel(self):
        polls = []

        def should_cancel():
            polls.append(1)
            return len(polls) > 2

        renderer = FakeRenderer()
        with self.assertRaises(CaptureCancelled):
            CaptureOrchestrator(
                renderer, ImpostorSettings(views=4, atlas_height=8),
                should_cancel=should_cancel
            ).run(UNIT_CUBE)

        assert len({index for index, _ in renderer.calls}) == 2
        assert all(image.is_empty for image in renderer.images)
        assert renderer.sessions_closed == 1

    def test_single_use(self):
        orchestrator = CaptureOrchestrator(FakeRenderer(), ImpostorSettings(views=2, atlas_height=8))
        orchestrator.run(UNIT_CUBE)
        with self.assertRaises(RuntimeError):
            orchestrator.run(UNIT_CUBE)

    def test_bad_bounds(self):
        renderer = FakeRenderer()
        with self.assertRaises(InvalidInputError):
            CaptureOrchestrator(renderer).run(Bounds3D((0, 0, 0), (0, 0, 0)))
        assert renderer.calls == []

    def test_no_renderer(self):
        with self.assertRaises(InvalidInputError):
            CaptureOrchestrator(None)


if __name__ == "__main__":
    unittest.main(verbosity=2)
