"""
Integration tests for the Impostor Generator.
"""

import sys
from pathlib import Path
import tempfile
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from impostor_generator import (
    BatchProcessor, ImpostorGenerator, ImpostorSettings, InvalidInputError,
    RenderMode, SceneMesh
)
from impostor_generator.cli import build_settings, create_parser, main
from impostor_generator.exporters import read_glb


CUBE_OBJ = """
v -0.5 0 -0.5
v 0.5 0 -0.5
v 0.5 1 -0.5
v -0.5 1 -0.5
v -0.5 0 0.5
v 0.5 0 0.5
v 0.5 1 0.5
v -0.5 1 0.5
f 1 2 3 4
f 5 8 7 6
f 1 5 6 2
f 4 3 7 8
f 1 4 8 5
f 2 6 7 3
"""


def unit_cube() -> SceneMesh:
    return SceneMesh.box(center=(0.0, 0.5, 0.0), color=(0.3, 0.7, 0.2, 1.0))


class TestImpostorGenerator(unittest.TestCase):
    """Integration tests for ImpostorGenerator."""

    def test_basic_pipeline(self):
        """Unit cube, 4 views, quad planes."""
        generator = ImpostorGenerator(ImpostorSettings(views=4, atlas_height=16))
        generator.load_scene(unit_cube())
        generator.generate()

        assert generator.vertex_count == 16
        assert generator.triangle_count == 8
        assert generator.texture_set.view_count == 4
        assert generator.texture_set.atlas_height == 16

        rects = generator.texture_set.rects
        assert len(rects) == 4
        assert generator.texture_set.atlas_width == sum(rect.width for rect in rects)
        assert [rect.x for rect in rects] == [sum(r.width for r in rects[:i]) for i in range(4)]

    def test_high_quality(self):
        settings = ImpostorSettings(views=4, atlas_height=16, render_mode=RenderMode.HIGH_QUALITY)
        generator = ImpostorGenerator(settings).load_scene(unit_cube()).generate()

        assert generator.vertex_count == 32
        assert generator.triangle_count == 16

    def test_base_follows_bounds(self):
        """Mesh base sits at the bottom of the bounds plus the manual offset."""
        settings = ImpostorSettings(views=4, atlas_height=8, vertical_offset=-0.2)
        scene = SceneMesh.box(center=(0.0, 2.0, 0.0))
        generator = ImpostorGenerator(settings).load_scene(scene).generate()

        assert np.isclose(generator.mesh.vertices[:, 1].min(), 1.5 - 0.2, atol=1e-5)

    def test_atlas_has_content(self):
        generator = ImpostorGenerator(ImpostorSettings(views=4, atlas_height=16))
        generator.load_scene(unit_cube()).generate()

        alpha = generator.texture_set.albedo.alpha
        assert alpha.max() == 1.0
        assert alpha.min() == 0.0

    def test_capture_before_load(self):
        with self.assertRaises(RuntimeError):
            ImpostorGenerator().capture()

    def test_export_before_generate(self):
        generator = ImpostorGenerator().load_scene(unit_cube())
        with self.assertRaises(RuntimeError):
            generator.export_glb("never.glb")

    def test_release(self):
        generator = ImpostorGenerator(ImpostorSettings(views=2, atlas_height=8))
        generator.load_scene(unit_cube()).generate()
        atlas = generator.texture_set.albedo
        generator.release()

        assert atlas.is_empty
        assert generator.texture_set is None
        assert generator.mesh is None

    def test_stats_and_preview(self):
        generator = ImpostorGenerator(ImpostorSettings(views=4, atlas_height=8))
        assert generator.get_mesh_stats() == {"error": "No mesh"}

        generator.load_scene(unit_cube()).generate()
        stats = generator.get_mesh_stats()
        preview = generator.preview()

        assert stats["source_triangles"] == 12
        assert stats["views"] == 4
        assert preview["meshed"]
        assert preview["has_normal_map"]

    def test_export_all(self):
        generator = ImpostorGenerator(ImpostorSettings(views=4, atlas_height=8))
        generator.load_scene(unit_cube()).generate()

        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp) / "cube"
            generator.export_all(base, formats=["glb", "obj"])

            assert (Path(tmp) / "cube.glb").exists()
            assert (Path(tmp) / "cube.obj").exists()
            assert (Path(tmp) / "cube.mtl").exists()
            assert (Path(tmp) / "cube_albedo.png").exists()

            gltf, _ = read_glb(Path(tmp) / "cube.glb")
            assert gltf["nodes"][0]["name"] == "ImpostorMesh_Quad_4Dir_Efficient"
            assert gltf["materials"][0]["doubleSided"]

    def test_load_obj(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "cube.obj"
            path.write_text(CUBE_OBJ)
            generator = ImpostorGenerator(ImpostorSettings(views=4, atlas_height=8))
            generator.load_mesh(path).generate()

        assert generator.scene.triangle_count == 12
        assert generator.vertex_count == 16


class TestSettings(unittest.TestCase):
    """Validation of generation settings."""

    def test_defaults(self):
        settings = ImpostorSettings()
        assert settings.views == 6
        assert settings.atlas_height == 512
        assert settings.edge_padding_iterations == 3

    def test_invalid(self):
        with self.assertRaises(InvalidInputError):
            ImpostorSettings(views=0)
        with self.assertRaises(InvalidInputError):
            ImpostorSettings(supersampling=3)
        with self.assertRaises(InvalidInputError):
            ImpostorSettings(front_face_only=True, render_mode=RenderMode.HIGH_QUALITY)

    def test_string_enums(self):
        settings = ImpostorSettings(profile="octagon", render_mode="high_quality")
        assert settings.double_sided_geometry


class TestBatchProcessor(unittest.TestCase):
    """Tests for batch processing."""

    def test_process_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            (tmp / "a.obj").write_text(CUBE_OBJ)
            (tmp / "b.obj").write_text(CUBE_OBJ)

            processor = BatchProcessor(ImpostorSettings(views=2, atlas_height=8))
            outputs = processor.process_directory(tmp, tmp / "out", formats=["glb"])

            assert len(outputs) == 2
            assert (tmp / "out" / "a_Impostor.glb").exists()
            assert (tmp / "out" / "b_Impostor.glb").exists()


class TestCLI(unittest.TestCase):
    """Tests for the command-line interface."""

    def test_build_settings(self):
        args = create_parser().parse_args([
            "tree.obj", "--views", "8", "--profile", "octagon",
            "--cross-section", "0.6:0.8", "--no-edge-padding", "--quad-offset", "0.01"
        ])
        settings = build_settings(args)

        assert settings.views == 8
        assert settings.profile.value == "octagon"
        assert settings.include_top_down
        assert not settings.edge_padding
        assert settings.cross_sections[0].size_multiplier == 0.8
        assert settings.quad_offset == 0.01

    def test_single_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            model = Path(tmp) / "cube.obj"
            model.write_text(CUBE_OBJ)
            output = Path(tmp) / "cube_impostor"

            code = main([str(model), "-o", str(output), "--views", "4",
                         "--atlas-height", "8", "-f", "glb", "png"])

            assert code == 0
            assert output.with_suffix(".glb").exists()
            assert (Path(tmp) / "cube_impostor_albedo.png").exists()

    def test_missing_input(self):
        assert main(["does_not_exist.obj"]) == 1

    def test_bad_settings(self):
        with tempfile.TemporaryDirectory() as tmp:
            model = Path(tmp) / "cube.obj"
            model.write_text(CUBE_OBJ)
            assert main([str(model), "--views", "0"]) == 1


if __name__ == "__main__":
    unittest.main(verbosity=2)
