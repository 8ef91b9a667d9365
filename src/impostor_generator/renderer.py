"""
Snapshot Rendering

This module handles:
- The Renderer interface the capture loop draws snapshots through
- The capture session guard (renderer state restored on every exit path)
- SceneMesh: triangles with per-vertex colors, the thing being captured
- MeshRenderer: a reference orthographic software rasterizer

MeshRenderer Lighting:
- Flat ambient term, scaled by ambient multiplier and intensity
- Key light rotated with the camera, so every radial view is lit alike
- Fill light offset from the key by (30, 150, 20) degrees at 0.45x intensity
- Top-down view uses fixed world lights instead

Lighting is summed in Linear space and the result encoded back to sRGB.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from typing import Iterable, Optional
import logging
import math
import numpy as np
from numba import njit

from .color import linear_to_srgb, normalize_colors, srgb_to_linear
from .config import LightingSettings
from .errors import InvalidInputError, RenderError
from .imaging import RasterImage
from .projection import Bounds3D, euler_rotation, world_to_local
from .views import ViewKind, ViewSpec

logger = logging.getLogger(__name__)

# Pixels exactly on a shared edge belong to both triangles
BARY_EPSILON = -1e-6

# Flat ambient light before the multiplier and intensity are applied
AMBIENT_BASE = 0.4

DEFAULT_VERTEX_COLOR = (0.8, 0.8, 0.8, 1.0)


class MaterialOverride(Enum):
    """What a capture writes into the snapshot."""
    ALBEDO = "albedo"   # Lit surface color
    NORMAL = "normal"   # World-space normal encoded as n * 0.5 + 0.5


class Renderer(ABC):
    """
    Draws one orthographic snapshot per call.

    Implementations render with a transparent clear color at
    (round(height * aspect) x height) * supersampling pixels and box-filter
    down to the nominal size. An invalid scene must raise RenderError, never
    return a blank image.

    Example:
        with renderer.session():
            image = renderer.capture(view, 512, 2, MaterialOverride.ALBEDO)
    """

    @property
    def supports_normals(self) -> bool:
        """Whether MaterialOverride.NORMAL captures are available."""
        return True

    @contextmanager
    def session(self):
        """
        Capture session guard.

        Records renderer state on entry and restores it on exit, whether the
        body returns, raises or is cancelled.
        """
        state = self.begin_session()
        try:
            yield self
        finally:
            self.end_session(state)

    def begin_session(self):
        """Record state to restore later. Returns an opaque token."""
        return None

    def end_session(self, state):
        """Restore the state recorded by begin_session."""

    def apply_lighting(self, lighting: LightingSettings):
        """Set capture lighting for the rest of the session."""

    @abstractmethod
    def capture(
        self,
        view: ViewSpec,
        target_height: int,
        supersampling: int = 1,
        material: MaterialOverride = MaterialOverride.ALBEDO
    ) -> RasterImage:
        """
        Render one snapshot.

        Args:
            view: Planned orthographic view
            target_height: Output height in pixels
            supersampling: Integer render scale before downsampling
            material: Albedo or normal pass

        Returns:
            RasterImage of size view.pixel_size(target_height)
        """


class SceneMesh:
    """
    Triangle mesh with per-vertex colors.

    Attributes:
        vertices: (N, 3) float64 positions
        triangles: (M, 3) int64 vertex indices
        colors: (N, 4) float32 sRGB RGBA in [0, 1]
        name: Display name
    """

    def __init__(
        self,
        vertices: np.ndarray,
        triangles: np.ndarray,
        colors: Optional[np.ndarray] = None,
        name: str = "scene"
    ):
        self.vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        self.triangles = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
        if colors is None:
            colors = np.tile(np.array(DEFAULT_VERTEX_COLOR, dtype=np.float32),
                             (len(self.vertices), 1))
        self.colors = normalize_colors(colors)
        if len(self.colors) != len(self.vertices):
            raise InvalidInputError(
                f"{len(self.colors)} colors given for {len(self.vertices)} vertices"
            )
        self.name = name

    @classmethod
    def box(cls, center=(0.0, 0.0, 0.0), size=(1.0, 1.0, 1.0),
            color=DEFAULT_VERTEX_COLOR, name: str = "box") -> "SceneMesh":
        """Axis-aligned box with 12 triangles."""
        bounds = Bounds3D(center, tuple(np.asarray(size, dtype=np.float64) / 2.0))
        corners = bounds.corners()
        # corners() orders x, then y, then z as the slowest to fastest sign
        faces = [
            (0, 1, 3, 2), (4, 6, 7, 5),   # -X, +X
            (0, 4, 5, 1), (2, 3, 7, 6),   # -Y, +Y
            (0, 2, 6, 4), (1, 5, 7, 3),   # -Z, +Z
        ]
        triangles = []
        for a, b, c, d in faces:
            triangles.append((a, b, c))
            triangles.append((a, c, d))
        colors = np.tile(np.asarray(color, dtype=np.float32), (8, 1))
        return cls(corners, np.array(triangles), colors, name=name)

    @classmethod
    def merge(cls, meshes: Iterable["SceneMesh"], name: str = "scene") -> "SceneMesh":
        """Concatenate several meshes into one."""
        vertices, triangles, colors = [], [], []
        offset = 0
        for mesh in meshes:
            vertices.append(mesh.vertices)
            triangles.append(mesh.triangles + offset)
            colors.append(mesh.colors)
            offset += len(mesh.vertices)
        if not vertices:
            return cls(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros((0, 4), dtype=np.float32), name)
        return cls(np.concatenate(vertices), np.concatenate(triangles),
                   np.concatenate(colors), name=name)

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0 or self.triangle_count == 0

    def bounds(self) -> Bounds3D:
        """Axis-aligned bounds of the referenced vertices."""
        if self.is_empty:
            raise InvalidInputError(f"Scene '{self.name}' has no geometry")
        return Bounds3D.from_points(self.vertices[np.unique(self.triangles)])

    def face_normals(self) -> np.ndarray:
        """Unit face normals (M, 3); degenerate faces get (0, 1, 0)."""
        v = self.vertices
        t = self.triangles
        normals = np.cross(v[t[:, 1]] - v[t[:, 0]], v[t[:, 2]] - v[t[:, 0]])
        lengths = np.linalg.norm(normals, axis=1)
        degenerate = lengths < 1e-12
        normals[degenerate] = (0.0, 1.0, 0.0)
        lengths[degenerate] = 1.0
        return normals / lengths[:, np.newaxis]

    def validate(self):
        """
        Raise RenderError if the scene cannot be drawn.

        Checks for missing geometry, non-finite positions and triangle
        indices outside the vertex array.
        """
        if self.is_empty:
            raise RenderError(f"Scene '{self.name}' has no renderable geometry")
        if not np.isfinite(self.vertices).all():
            raise RenderError(f"Scene '{self.name}' has non-finite vertex positions")
        if self.triangles.min() < 0 or self.triangles.max() >= self.vertex_count:
            raise RenderError(f"Scene '{self.name}' has out-of-range triangle indices")

    def __repr__(self) -> str:
        return f"SceneMesh({self.name!r}, {self.vertex_count} vertices, {self.triangle_count} triangles)"


@njit(cache=True)
def _rasterize(px, py, pz, triangles, width, height, near, far, face_ids, bary, depth):
    """
    Z-buffered triangle rasterization at pixel centers.

    Writes, per covered pixel, the nearest triangle's index and barycentric
    weights. Depth is the camera-space distance along the view axis and is
    tested against the clip range.
    """
    for t in range(triangles.shape[0]):
        i0 = triangles[t, 0]
        i1 = triangles[t, 1]
        i2 = triangles[t, 2]
        x0, y0, z0 = px[i0], py[i0], pz[i0]
        x1, y1, z1 = px[i1], py[i1], pz[i1]
        x2, y2, z2 = px[i2], py[i2], pz[i2]

        denom = (y1 - y2) * (x0 - x2) + (x2 - x1) * (y0 - y2)
        if abs(denom) < 1e-12:
            continue

        xmin = max(0, int(math.floor(min(x0, x1, x2))))
        xmax = min(width - 1, int(math.ceil(max(x0, x1, x2))))
        ymin = max(0, int(math.floor(min(y0, y1, y2))))
        ymax = min(height - 1, int(math.ceil(max(y0, y1, y2))))

        for row in range(ymin, ymax + 1):
            cy = row + 0.5
            for col in range(xmin, xmax + 1):
                cx = col + 0.5
                w0 = ((y1 - y2) * (cx - x2) + (x2 - x1) * (cy - y2)) / denom
                w1 = ((y2 - y0) * (cx - x2) + (x0 - x2) * (cy - y2)) / denom
                w2 = 1.0 - w0 - w1
                if w0 < BARY_EPSILON or w1 < BARY_EPSILON or w2 < BARY_EPSILON:
                    continue
                z = w0 * z0 + w1 * z1 + w2 * z2
                if z < near or z > far or z >= depth[row, col]:
                    continue
                depth[row, col] = z
                face_ids[row, col] = t
                bary[row, col, 0] = w0
                bary[row, col, 1] = w1
                bary[row, col, 2] = w2


class MeshRenderer(Renderer):
    """
    Orthographic software renderer for a SceneMesh.

    Faces are shaded flat, lit from whichever side faces the camera, so
    open foliage cards render the same from both sides.
    """

    def __init__(
        self,
        scene: Optional[SceneMesh] = None,
        lighting: Optional[LightingSettings] = None
    ):
        """
        Initialize the renderer.

        Args:
            scene: Mesh to draw (can be set later with set_scene)
            lighting: Capture lighting (default LightingSettings())
        """
        self.scene = scene
        self.lighting = lighting or LightingSettings()
        self._session_depth = 0

    def set_scene(self, scene: SceneMesh):
        self.scene = scene

    @property
    def in_session(self) -> bool:
        return self._session_depth > 0

    def begin_session(self):
        self._session_depth += 1
        return self.lighting

    def end_session(self, state):
        self.lighting = state
        self._session_depth -= 1

    def apply_lighting(self, lighting: LightingSettings):
        self.lighting = lighting

    def capture(
        self,
        view: ViewSpec,
        target_height: int,
        supersampling: int = 1,
        material: MaterialOverride = MaterialOverride.ALBEDO
    ) -> RasterImage:
        if self.scene is None:
            raise RenderError("No scene to render")
        self.scene.validate()
        if target_height < 1:
            raise InvalidInputError(f"target_height must be >= 1, got {target_height}")
        if supersampling < 1:
            raise InvalidInputError(f"supersampling must be >= 1, got {supersampling}")

        width, height = view.pixel_size(target_height)
        render_w = width * supersampling
        render_h = height * supersampling

        face_ids, bary = self._rasterize_view(view, render_w, render_h)
        pixels = np.zeros((render_h, render_w, 4), dtype=np.float32)

        covered = face_ids >= 0
        if covered.any():
            faces = face_ids[covered]
            weights = bary[covered]
            normals = self._facing_normals(view)

            if material == MaterialOverride.NORMAL:
                rgba = np.ones((len(faces), 4), dtype=np.float32)
                rgba[:, :3] = normals[faces] * 0.5 + 0.5
            else:
                rgba = self._shade(view, faces, weights, normals)
            pixels[covered] = rgba

        logger.debug(
            "Captured %s view %d (%s) at %dx%d, %d px covered",
            view.kind.value, view.index, material.value, render_w, render_h, int(covered.sum())
        )

        image = RasterImage(pixels)
        if supersampling > 1:
            image = image.downsample(supersampling)
        return image

    def _rasterize_view(self, view: ViewSpec, width: int, height: int):
        local = world_to_local(self.scene.vertices, view.position, view.rotation)
        # Camera space to pixels; row 0 is the top of the image
        px = (local[:, 0] / view.ortho_width + 0.5) * width
        py = (0.5 - local[:, 1] / view.ortho_height) * height
        pz = local[:, 2]

        face_ids = np.full((height, width), -1, dtype=np.int64)
        bary = np.zeros((height, width, 3), dtype=np.float64)
        depth = np.full((height, width), np.inf, dtype=np.float64)
        _rasterize(px, py, pz, self.scene.triangles, width, height,
                   view.near_clip, view.far_clip, face_ids, bary, depth)
        return face_ids, bary

    def _facing_normals(self, view: ViewSpec) -> np.ndarray:
        """Face normals flipped to point toward the camera."""
        normals = self.scene.face_normals()
        cam_forward = view.rotation[:, 2]
        away = normals @ cam_forward > 0
        normals[away] = -normals[away]
        return normals

    def _light_directions(self, view: ViewSpec):
        """(key, fill) directions the lights shine along, world space."""
        lighting = self.lighting
        if view.kind == ViewKind.TOP_DOWN:
            yaw = lighting.key_rotation[1]
            key = euler_rotation((45.0, yaw, 0.0))
            fill = euler_rotation((30.0, yaw + 180.0, 0.0))
        else:
            key = view.rotation @ euler_rotation(lighting.key_rotation)
            fill = view.rotation @ euler_rotation(lighting.fill_rotation)
        return key[:, 2], fill[:, 2]

    def _shade(self, view: ViewSpec, faces, weights, normals) -> np.ndarray:
        lighting = self.lighting
        key_dir, fill_dir = self._light_directions(view)

        ambient = AMBIENT_BASE * lighting.ambient_multiplier * lighting.ambient_intensity
        light = (
            ambient
            + lighting.key_intensity * np.maximum(0.0, normals @ -key_dir)
            + lighting.fill_intensity * np.maximum(0.0, normals @ -fill_dir)
        )

        colors_linear = srgb_to_linear(self.scene.colors)
        corner_colors = colors_linear[self.scene.triangles[faces]]   # (P, 3, 4)
        rgba = (weights[:, :, np.newaxis] * corner_colors).sum(axis=1)
        rgba[:, :3] *= light[faces][:, np.newaxis]
        return linear_to_srgb(rgba.astype(np.float32))
