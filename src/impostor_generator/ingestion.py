"""
Source Model Ingestion

This module handles:
- Loading model files (OBJ/MTL, glTF, PLY, STL, OFF) through trimesh
- Per-vertex, per-face and material colors flattened to vertex colors
- Conversion from the file's axis convention to the internal one
"""

from pathlib import Path
from typing import Optional, Union
import logging
import numpy as np
import trimesh

from .errors import InvalidInputError
from .projection import CoordinateSystem, flips_handedness, transform_vertices
from .renderer import DEFAULT_VERTEX_COLOR, SceneMesh

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = (".obj", ".glb", ".gltf", ".ply", ".stl", ".off")


class ModelLoader:
    """
    Model loader built on trimesh.

    Every geometry in the file is baked into world space with its scene
    graph transform and merged into one SceneMesh. Colors come from vertex
    colors, face colors or the material's main color, in that order;
    geometry with none of these gets the default color.

    Example:
        scene = ModelLoader().load("tree.obj").scene
    """

    def __init__(
        self,
        source_system: CoordinateSystem = CoordinateSystem.GLTF,
        default_color=DEFAULT_VERTEX_COLOR
    ):
        """
        Initialize the loader.

        Args:
            source_system: Axis convention of the file (OBJ and glTF files
                are Y-up right-handed, the glTF convention)
            default_color: RGBA for geometry without any color
        """
        self.source_system = source_system
        self.default_color = np.asarray(default_color, dtype=np.float32)
        self._scene: Optional[SceneMesh] = None

    def load(self, path: Union[str, Path]) -> "ModelLoader":
        """
        Load a model file (and the material libraries it references).

        Args:
            path: Path to the model

        Returns:
            self for method chaining
        """
        path = Path(path)
        if path.suffix.lower() not in SUPPORTED_FORMATS:
            raise InvalidInputError(f"Unsupported model format: {path.suffix or path.name}")
        if not path.exists():
            raise FileNotFoundError(f"Model not found: {path}")
        loaded = trimesh.load(str(path), force="scene", process=False)
        return self.load_trimesh(loaded, name=path.stem)

    def load_text(self, text: str, file_type: str = "obj", name: str = "scene") -> "ModelLoader":
        """
        Parse model source text (OBJ by default).

        Returns:
            self for method chaining
        """
        loaded = trimesh.load(
            trimesh.util.wrap_as_stream(text),
            file_type=file_type,
            force="scene",
            process=False
        )
        return self.load_trimesh(loaded, name=name)

    def load_trimesh(
        self,
        loaded: Union[trimesh.Trimesh, trimesh.Scene],
        name: str = "scene"
    ) -> "ModelLoader":
        """
        Convert an already loaded trimesh object.

        Args:
            loaded: A Trimesh or a Scene
            name: Name given to the resulting SceneMesh

        Returns:
            self for method chaining
        """
        if isinstance(loaded, trimesh.Trimesh):
            geometries = [loaded]
        else:
            geometries = [g for g in loaded.dump() if isinstance(g, trimesh.Trimesh)]

        parts = [self._convert(g) for g in geometries if len(g.vertices) and len(g.faces)]
        if not parts:
            raise InvalidInputError(f"Model '{name}' has no faces")

        self._scene = SceneMesh.merge(parts, name=name)
        logger.info("Loaded %s: %d vertices, %d triangles (%d parts)",
                    name, self._scene.vertex_count, self._scene.triangle_count, len(parts))
        return self

    def _convert(self, mesh: trimesh.Trimesh) -> SceneMesh:
        vertices = np.asarray(mesh.vertices, dtype=np.float64)
        faces = np.asarray(mesh.faces, dtype=np.int64)
        colors = self._vertex_colors(mesh)

        if colors is None:
            # Face colors: every corner becomes its own vertex
            face_colors = self._face_colors(mesh)
            if face_colors is not None:
                vertices = vertices[faces].reshape(-1, 3)
                colors = np.repeat(face_colors, 3, axis=0)
                faces = np.arange(len(vertices), dtype=np.int64).reshape(-1, 3)
            else:
                colors = np.tile(self._material_color(mesh), (len(vertices), 1))

        if self.source_system != CoordinateSystem.INTERNAL:
            vertices = transform_vertices(vertices, self.source_system, CoordinateSystem.INTERNAL)
            if flips_handedness(self.source_system, CoordinateSystem.INTERNAL):
                faces = faces[:, [0, 2, 1]]

        return SceneMesh(vertices, faces, colors)

    @staticmethod
    def _vertex_colors(mesh: trimesh.Trimesh) -> Optional[np.ndarray]:
        visual = mesh.visual
        if visual.kind == "vertex":
            return np.asarray(visual.vertex_colors, dtype=np.uint8)
        return None

    @staticmethod
    def _face_colors(mesh: trimesh.Trimesh) -> Optional[np.ndarray]:
        visual = mesh.visual
        if visual.kind == "face":
            return np.asarray(visual.face_colors, dtype=np.uint8)
        return None

    def _material_color(self, mesh: trimesh.Trimesh) -> np.ndarray:
        material = getattr(mesh.visual, "material", None)
        color = getattr(material, "main_color", None)
        if color is None:
            return self.default_color
        return np.asarray(color, dtype=np.uint8).astype(np.float32) / 255.0

    @property
    def scene(self) -> SceneMesh:
        """The loaded SceneMesh."""
        if self._scene is None:
            raise RuntimeError("No model loaded")
        return self._scene


def load_scene(
    path: Union[str, Path],
    source_system: CoordinateSystem = CoordinateSystem.GLTF
) -> SceneMesh:
    """Load a model file into a SceneMesh."""
    return ModelLoader(source_system=source_system).load(path).scene