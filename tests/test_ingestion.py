"""
Unit tests for model loading.
"""

import sys
from pathlib import Path
import tempfile
import numpy as np
import trimesh
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from impostor_generator.errors import InvalidInputError
from impostor_generator.ingestion import ModelLoader, load_scene
from impostor_generator.projection import CoordinateSystem
from impostor_generator.renderer import DEFAULT_VERTEX_COLOR


QUAD_OBJ = """
# unit quad
v 0 0 0
v 1 0 0
v 1 1 0
v 0 1 0
f 1 2 3 4
"""


class TestModelLoader(unittest.TestCase):
    """Tests for OBJ text loading."""

    def test_quad_triangulated(self):
        scene = ModelLoader(CoordinateSystem.INTERNAL).load_text(QUAD_OBJ).scene

        assert scene.vertex_count == 4
        assert scene.triangle_count == 2
        assert set(np.unique(scene.triangles)) == {0, 1, 2, 3}

    def test_shared_vertices(self):
        text = "v 0 0 0\nv 1 0 0\nv 1 1 0\nv 0 1 0\nf 1 2 3\nf 1 3 4\n"
        scene = ModelLoader().load_text(text).scene

        assert scene.vertex_count == 4
        assert scene.triangle_count == 2

    def test_negative_indices(self):
        text = "v 0 0 0\nv 1 0 0\nv 0 1 0\nf -3 -2 -1\n"
        scene = ModelLoader(CoordinateSystem.INTERNAL).load_text(text).scene

        assert scene.triangle_count == 1
        assert np.allclose(np.sort(scene.vertices[:, 0]), [0.0, 0.0, 1.0])

    def test_slash_tokens(self):
        text = "v 0 0 0\nv 1 0 0\nv 0 1 0\nvt 0 0\nvn 0 0 1\nf 1/1/1 2/1/1 3//1\n"
        scene = ModelLoader().load_text(text).scene

        assert scene.triangle_count == 1

    def test_vertex_colors(self):
        text = "v 0 0 0 1 0 0\nv 1 0 0 1 0 0\nv 0 1 0 1 0 0\nf 1 2 3\n"
        scene = ModelLoader().load_text(text).scene

        assert np.allclose(scene.colors, [1.0, 0.0, 0.0, 1.0], atol=1e-2)

    def test_default_color(self):
        scene = ModelLoader().load_text(QUAD_OBJ).scene
        assert np.allclose(scene.colors, DEFAULT_VERTEX_COLOR)

    def test_gltf_axes_mirror_z(self):
        text = "v 0 0 1\nv 1 0 1\nv 0 1 1\nf 1 2 3\n"
        scene = ModelLoader(CoordinateSystem.GLTF).load_text(text).scene

        assert np.allclose(scene.vertices[:, 2], -1.0)

    def test_mirroring_reverses_winding(self):
        text = "v 0 0 0\nv 1 0 0\nv 0 1 0\nf 1 2 3\n"
        internal = ModelLoader(CoordinateSystem.INTERNAL).load_text(text).scene
        mirrored = ModelLoader(CoordinateSystem.GLTF).load_text(text).scene

        # The +Z normal in the file's frame is -Z once mirrored
        assert np.allclose(internal.face_normals()[0], [0.0, 0.0, 1.0])
        assert np.allclose(mirrored.face_normals()[0], [0.0, 0.0, -1.0])

    def test_blender_axes(self):
        text = "v 0 0 2\nv 1 0 2\nv 0 1 2\nf 1 2 3\n"
        scene = ModelLoader(CoordinateSystem.BLENDER).load_text(text).scene

        # Blender Z-up becomes internal Y-up
        assert np.allclose(scene.vertices[:, 1], 2.0)

    def test_no_faces(self):
        with self.assertRaises(InvalidInputError):
            ModelLoader().load_text("v 0 0 0\nv 1 0 0\n")

    def test_scene_before_load(self):
        with self.assertRaises(RuntimeError):
            ModelLoader().scene


class TestTrimeshInput(unittest.TestCase):
    """Tests for converting in-memory trimesh objects."""

    def test_face_colors_split_corners(self):
        mesh = trimesh.creation.box()
        mesh.visual.face_colors = [255, 0, 0, 255]
        scene = ModelLoader(CoordinateSystem.INTERNAL).load_trimesh(mesh, name="red").scene

        assert scene.name == "red"
        assert scene.triangle_count == 12
        assert scene.vertex_count == 36
        assert np.allclose(scene.colors, [1.0, 0.0, 0.0, 1.0])

    def test_scene_transforms_baked(self):
        box = trimesh.creation.box(extents=(1.0, 1.0, 1.0))
        model = trimesh.Scene()
        model.add_geometry(box, transform=trimesh.transformations.translation_matrix((0.0, 3.0, 0.0)))
        model.add_geometry(box.copy())
        scene = ModelLoader(CoordinateSystem.INTERNAL).load_trimesh(model).scene

        assert scene.triangle_count == 24
        bounds = scene.bounds()
        assert np.allclose(bounds.min, [-0.5, -0.5, -0.5])
        assert np.allclose(bounds.max, [0.5, 3.5, 0.5])


class TestFiles(unittest.TestCase):
    """Tests for loading from disk."""

    def test_material_color_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            (tmp / "leaf.mtl").write_text("newmtl leaf\nKd 0.0 1.0 0.0\n")
            (tmp / "leaf.obj").write_text(
                "mtllib leaf.mtl\nv 0 0 0\nv 1 0 0\nv 0 1 0\nv 1 1 0\n"
                "f 1 2 3\nusemtl leaf\nf 2 4 3\n"
            )
            scene = load_scene(tmp / "leaf.obj")

        assert scene.name == "leaf"
        assert scene.triangle_count == 2
        green = np.all(np.isclose(scene.colors, [0.0, 1.0, 0.0, 1.0], atol=1e-2), axis=1)
        green_triangles = green[scene.triangles].all(axis=1)
        assert green_triangles.sum() == 1

    def test_ply_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "box.ply"
            trimesh.creation.box().export(str(path))
            scene = load_scene(path, CoordinateSystem.INTERNAL)

        assert scene.triangle_count == 12

    def test_unsupported_format(self):
        with self.assertRaises(InvalidInputError):
            load_scene("model.fbx")

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_scene("does_not_exist.obj")


if __name__ == "__main__":
    unittest.main(verbosity=2)
