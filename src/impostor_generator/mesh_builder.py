"""
Impostor Mesh Construction

Builds the geometry the atlas is draped over:

1. Radial planes: one quad or octagon per captured view, standing on the
   ground and rotated to face its view direction. Each plane maps to its
   own atlas rect.
2. Back planes (high quality mode): a second, inward-facing copy of each
   plane textured with the opposite view, for correct two-sided lighting
   without a double-sided material.
3. Horizontal cross-sections: square quads textured with the top-down
   snapshot, used for canopies.
4. Tangents: accumulated per triangle from positions and UVs, then
   orthogonalized against the vertex normal (Gram-Schmidt).

Performance: tangent accumulation runs in a Numba JIT kernel.
"""

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional
import logging
import numpy as np
from numba import njit

from .config import (
    HorizontalCrossSection, ImpostorSettings, MeshProfile, OctagonParams, RenderMode
)
from .errors import InvalidInputError, PreconditionError
from .projection import FORWARD, UP, look_rotation, rotate_y

logger = logging.getLogger(__name__)

# Spacing between consecutive radial planes, against z-fighting
QUAD_Z_OFFSET = 0.001
BACK_FACE_OFFSET = 0.001
MIN_MESH_HEIGHT = 0.01
MIN_SECTION_SIZE = 0.001

QUAD_TRIANGLES = np.array([0, 2, 1, 1, 2, 3], dtype=np.uint32)
OCTAGON_TRIANGLES = np.array(
    [0, 1, 3, 0, 3, 2, 2, 3, 5, 2, 5, 4, 4, 5, 7, 4, 7, 6], dtype=np.uint32
)
SECTION_TOP_TRIANGLES = np.array([0, 2, 1, 1, 2, 3], dtype=np.uint32)
SECTION_BOTTOM_TRIANGLES = np.array([0, 1, 2, 1, 3, 2], dtype=np.uint32)

# Local UV corner for each cross-section vertex
SECTION_UV_CORNERS = np.array([[0, 0], [1, 0], [0, 1], [1, 1]], dtype=np.float64)


class Mesh(NamedTuple):
    """Container for impostor mesh geometry."""
    vertices: np.ndarray     # (N, 3) float32 positions
    normals: np.ndarray      # (N, 3) float32 normals
    uvs: np.ndarray          # (N, 2) float32 atlas UVs, v = 0 at the bottom
    triangles: np.ndarray    # (M, 3) uint32 vertex indices
    tangents: np.ndarray     # (N, 4) float32, w = handedness
    bounds_min: np.ndarray   # (3,)
    bounds_max: np.ndarray   # (3,)
    name: str

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)


@dataclass
class MeshSettings:
    """
    Mesh construction parameters.

    Attributes:
        profile: Radial plane shape
        octagon: Octagon shape parameters
        views: Radial planes to build (None = texture set's view count)
        height: Plane height (None = bounds height, at least 0.01)
        vertical_offset: Added to every vertex's Y
        cross_sections: Horizontal quads to add
        render_mode: EFFICIENT, or HIGH_QUALITY for explicit back faces
        quad_offset: Spacing between consecutive radial planes
    """

    profile: MeshProfile = MeshProfile.QUAD
    octagon: OctagonParams = field(default_factory=OctagonParams)
    views: Optional[int] = None
    height: Optional[float] = None
    vertical_offset: float = 0.0
    cross_sections: List[HorizontalCrossSection] = field(default_factory=list)
    render_mode: RenderMode = RenderMode.EFFICIENT
    quad_offset: float = QUAD_Z_OFFSET

    @classmethod
    def from_settings(cls, settings: ImpostorSettings, vertical_offset: Optional[float] = None) -> "MeshSettings":
        return cls(
            profile=settings.profile,
            octagon=settings.octagon,
            vertical_offset=settings.vertical_offset if vertical_offset is None else vertical_offset,
            cross_sections=list(settings.cross_sections),
            render_mode=settings.render_mode,
            quad_offset=settings.quad_offset
        )

    @property
    def double_sided(self) -> bool:
        return self.render_mode == RenderMode.HIGH_QUALITY


def mesh_name(profile: MeshProfile, views: int, render_mode: RenderMode, has_sections: bool) -> str:
    """E.g. "ImpostorMesh_Octagon_8Dir_HighQuality_HQuads"."""
    mode = "".join(part.title() for part in render_mode.name.split("_"))
    name = f"ImpostorMesh_{profile.name.title()}_{views}Dir_{mode}"
    if has_sections:
        name += "_HQuads"
    return name


def octagon_outline(half_width: float, height: float, params: OctagonParams) -> np.ndarray:
    """
    The 8 local vertices of an octagon plane.

    Rows are (left, right) pairs from bottom to top: base, lower shoulder,
    upper shoulder, top. The shoulders are the widest part.

    Returns:
        Array of shape (8, 3), z = 0
    """
    bottom_x = half_width * params.bottom_width_frac
    top_x = half_width * params.top_width_frac

    shoulder_center = height * params.shoulder_center_frac
    half_shoulder = height * params.shoulder_height_frac / 2.0
    lower_y = float(np.clip(shoulder_center - half_shoulder, 0.0, height))
    upper_y = float(np.clip(shoulder_center + half_shoulder, lower_y, height))
    if lower_y > upper_y:
        lower_y = upper_y

    return np.array([
        [-bottom_x, 0.0, 0.0], [bottom_x, 0.0, 0.0],
        [-half_width, lower_y, 0.0], [half_width, lower_y, 0.0],
        [-half_width, upper_y, 0.0], [half_width, upper_y, 0.0],
        [-top_x, height, 0.0], [top_x, height, 0.0],
    ], dtype=np.float64)


def quad_outline(half_width: float, height: float) -> np.ndarray:
    return np.array([
        [-half_width, 0.0, 0.0], [half_width, 0.0, 0.0],
        [-half_width, height, 0.0], [half_width, height, 0.0],
    ], dtype=np.float64)


@njit(cache=True)
def _accumulate_tangents(vertices, uvs, triangles, tan1, tan2):
    """
    Sum per-triangle texture-space directions into their vertices.

    tan1 collects the U direction, tan2 the V direction.
    """
    for t in range(triangles.shape[0]):
        i0 = triangles[t, 0]
        i1 = triangles[t, 1]
        i2 = triangles[t, 2]

        x1 = vertices[i1, 0] - vertices[i0, 0]
        y1 = vertices[i1, 1] - vertices[i0, 1]
        z1 = vertices[i1, 2] - vertices[i0, 2]
        x2 = vertices[i2, 0] - vertices[i0, 0]
        y2 = vertices[i2, 1] - vertices[i0, 1]
        z2 = vertices[i2, 2] - vertices[i0, 2]

        s1 = uvs[i1, 0] - uvs[i0, 0]
        t1 = uvs[i1, 1] - uvs[i0, 1]
        s2 = uvs[i2, 0] - uvs[i0, 0]
        t2 = uvs[i2, 1] - uvs[i0, 1]

        det = s1 * t2 - s2 * t1
        if abs(det) < 1e-12:
            continue
        r = 1.0 / det

        sx = (t2 * x1 - t1 * x2) * r
        sy = (t2 * y1 - t1 * y2) * r
        sz = (t2 * z1 - t1 * z2) * r
        tx = (s1 * x2 - s2 * x1) * r
        ty = (s1 * y2 - s2 * y1) * r
        tz = (s1 * z2 - s2 * z1) * r

        for k in range(3):
            i = triangles[t, k]
            tan1[i, 0] += sx
            tan1[i, 1] += sy
            tan1[i, 2] += sz
            tan2[i, 0] += tx
            tan2[i, 1] += ty
            tan2[i, 2] += tz


def compute_tangents(
    vertices: np.ndarray,
    normals: np.ndarray,
    uvs: np.ndarray,
    triangles: np.ndarray
) -> np.ndarray:
    """
    Per-vertex tangents for normal mapping.

    Args:
        vertices: (N, 3) positions
        normals: (N, 3) unit normals
        uvs: (N, 2) texture coordinates
        triangles: (M, 3) vertex indices

    Returns:
        (N, 4) float32 tangents; xyz is unit length and perpendicular to
        the normal, w is +1 or -1 (bitangent = cross(normal, tangent) * w)
    """
    n = len(vertices)
    tan1 = np.zeros((n, 3), dtype=np.float64)
    tan2 = np.zeros((n, 3), dtype=np.float64)
    _accumulate_tangents(
        np.ascontiguousarray(vertices, dtype=np.float64),
        np.ascontiguousarray(uvs, dtype=np.float64),
        np.ascontiguousarray(triangles, dtype=np.int64),
        tan1, tan2
    )

    normals = np.asarray(normals, dtype=np.float64)
    tangent = tan1 - normals * np.sum(normals * tan1, axis=1, keepdims=True)
    length = np.linalg.norm(tangent, axis=1)

    # Vertices without UV variation get any vector perpendicular to the normal
    missing = length < 1e-9
    if missing.any():
        fallback_axis = np.where(
            np.abs(normals[missing, 0:1]) < 0.9, [[1.0, 0.0, 0.0]], [[0.0, 0.0, 1.0]]
        )
        fallback = fallback_axis - normals[missing] * np.sum(normals[missing] * fallback_axis, axis=1, keepdims=True)
        tangent[missing] = fallback
        length[missing] = np.linalg.norm(fallback, axis=1)

    tangent = tangent / length[:, np.newaxis]
    handedness = np.where(np.sum(np.cross(normals, tangent) * tan2, axis=1) < 0.0, -1.0, 1.0)

    return np.column_stack([tangent, handedness]).astype(np.float32)


class _MeshParts:
    """Accumulates vertex blocks and their triangles."""

    def __init__(self):
        self.vertices = []
        self.normals = []
        self.uvs = []
        self.triangles = []
        self.count = 0

    def add(self, vertices, normal, uvs, triangles):
        vertices = np.asarray(vertices, dtype=np.float64)
        self.vertices.append(vertices)
        self.normals.append(np.tile(np.asarray(normal, dtype=np.float64), (len(vertices), 1)))
        self.uvs.append(np.asarray(uvs, dtype=np.float64))
        self.triangles.append(np.asarray(triangles, dtype=np.int64) + self.count)
        self.count += len(vertices)

    def arrays(self):
        if not self.vertices:
            return (np.zeros((0, 3)), np.zeros((0, 3)), np.zeros((0, 2)), np.zeros((0,), dtype=np.int64))
        return (np.vstack(self.vertices), np.vstack(self.normals),
                np.vstack(self.uvs), np.concatenate(self.triangles))


class MeshBuilder:
    """
    Builds an impostor mesh from a captured texture set.

    Example:
        builder = MeshBuilder()
        mesh = builder.build(texture_set, MeshSettings(profile=MeshProfile.OCTAGON))
        print(mesh.name, mesh.vertex_count)
    """

    def build(self, texture_set, settings: Optional[MeshSettings] = None) -> Mesh:
        """
        Build the mesh.

        Args:
            texture_set: GeneratedTextureSet from a capture run
            settings: Construction parameters (default MeshSettings())

        Returns:
            Mesh with positions, normals, UVs, triangles and tangents

        Raises:
            InvalidInputError: Empty texture set or non-positive height
            PreconditionError: Not enough atlas rects or view sizes
        """
        settings = settings or MeshSettings()
        if texture_set is None or texture_set.is_empty:
            raise InvalidInputError("Texture set is empty; nothing to build a mesh from")

        views = texture_set.view_count if settings.views is None else settings.views
        if views < 1:
            raise InvalidInputError(f"At least one view is required, got {views}")
        height = self._mesh_height(texture_set, settings)

        rects = texture_set.rects
        if views > texture_set.view_count:
            raise PreconditionError(
                f"{views} planes requested but only {texture_set.view_count} radial views were captured"
            )
        if len(rects) < views or len(texture_set.view_widths) < views or len(texture_set.directions) < views:
            raise PreconditionError(
                f"Texture set has {len(rects)} atlas entries for {views} views"
            )
        has_sections = bool(settings.cross_sections)
        # The top-down entry always follows every radial view
        top_down_index = texture_set.view_count
        if has_sections and len(rects) <= top_down_index:
            raise PreconditionError(
                f"Cross-sections need a top-down atlas entry: expected at least "
                f"{top_down_index + 1} entries, found {len(rects)}"
            )

        parts = _MeshParts()
        for i in range(views):
            self._add_radial_plane(parts, texture_set, settings, i, views, height)

        if has_sections:
            average_width = float(np.mean(texture_set.view_widths[:views]))
            for section in settings.cross_sections:
                self._add_cross_section(parts, texture_set, settings, section,
                                        rects[top_down_index], average_width, height)

        vertices, normals, uvs, triangles = parts.arrays()
        triangles = triangles.reshape(-1, 3)
        tangents = compute_tangents(vertices, normals, uvs, triangles)

        mesh = Mesh(
            vertices=vertices.astype(np.float32),
            normals=normals.astype(np.float32),
            uvs=uvs.astype(np.float32),
            triangles=triangles.astype(np.uint32),
            tangents=tangents,
            bounds_min=vertices.min(axis=0).astype(np.float32),
            bounds_max=vertices.max(axis=0).astype(np.float32),
            name=mesh_name(settings.profile, views, settings.render_mode, has_sections)
        )
        logger.info("Built %s: %d vertices, %d triangles",
                    mesh.name, mesh.vertex_count, mesh.triangle_count)
        return mesh

    @staticmethod
    def _mesh_height(texture_set, settings: MeshSettings) -> float:
        if settings.height is not None:
            if not settings.height > 0:
                raise InvalidInputError(f"Mesh height must be > 0, got {settings.height}")
            return float(settings.height)
        if texture_set.bounds is None:
            raise InvalidInputError("Texture set has no bounds and no mesh height was given")
        return max(MIN_MESH_HEIGHT, float(texture_set.bounds.size[1]))

    def _add_radial_plane(self, parts: _MeshParts, texture_set, settings: MeshSettings,
                          index: int, views: int, height: float):
        width = float(texture_set.view_widths[index])
        half_width = width / 2.0

        if settings.profile == MeshProfile.OCTAGON:
            local = octagon_outline(half_width, height, settings.octagon)
            local_triangles = OCTAGON_TRIANGLES
        else:
            local = quad_outline(half_width, height)
            local_triangles = QUAD_TRIANGLES

        # Plane rotation: face the view direction, then turn around
        rotation = look_rotation(texture_set.directions[index], UP)
        world = rotate_y(local, 180.0) @ rotation.T
        normal = rotation @ rotate_y(FORWARD, 180.0)

        lift = np.array([0.0, settings.vertical_offset, 0.0])
        world = world + normal * settings.quad_offset * index + lift

        u_local = (local[:, 0] + half_width) / max(0.001, width)
        v_local = local[:, 1] / max(0.001, height)

        rect = texture_set.rects[index]
        parts.add(world, normal, self._radial_uvs(rect, u_local, v_local, texture_set.atlas_width),
                  local_triangles)

        if settings.double_sided and views >= 2:
            back_rect = texture_set.rects[(index + views // 2) % views]
            back = world - normal * BACK_FACE_OFFSET
            reversed_triangles = local_triangles.reshape(-1, 3)[:, [0, 2, 1]].ravel()
            parts.add(back, -normal,
                      self._radial_uvs(back_rect, 1.0 - u_local, v_local, texture_set.atlas_width),
                      reversed_triangles)

    @staticmethod
    def _radial_uvs(rect, u_local: np.ndarray, v_local: np.ndarray, atlas_width: int) -> np.ndarray:
        u = rect.x / atlas_width + u_local * rect.width / atlas_width
        return np.column_stack([u, v_local])

    def _add_cross_section(self, parts: _MeshParts, texture_set, settings: MeshSettings,
                           section: HorizontalCrossSection, rect, average_width: float,
                           height: float):
        side = average_width * section.size_multiplier
        if side < MIN_SECTION_SIZE:
            logger.debug("Skipping cross-section at %.2f: too small (%.4f)",
                         section.height_fraction, side)
            return

        half = side / 2.0
        local = np.array([
            [-half, 0.0, -half], [half, 0.0, -half],
            [-half, 0.0, half], [half, 0.0, half],
        ])
        plane_y = min(1.0, max(0.0, section.height_fraction)) * height + settings.vertical_offset
        world = rotate_y(local, section.rotation_degrees) + np.array([0.0, plane_y, 0.0])

        u = (rect.x + SECTION_UV_CORNERS[:, 0] * rect.width) / texture_set.atlas_width
        v = (rect.y + SECTION_UV_CORNERS[:, 1] * rect.height) / texture_set.atlas_height
        uvs = np.column_stack([u, v])

        parts.add(world, UP, uvs, SECTION_TOP_TRIANGLES)
        if settings.double_sided:
            parts.add(world, -UP, uvs, SECTION_BOTTOM_TRIANGLES)


def mesh_stats(mesh: Mesh) -> dict:
    """
    Summary statistics for a built mesh.

    Args:
        mesh: Mesh from MeshBuilder

    Returns:
        Dictionary with counts and extents
    """
    size = (mesh.bounds_max - mesh.bounds_min) if mesh.vertex_count else np.zeros(3)
    return {
        "name": mesh.name,
        "vertices": mesh.vertex_count,
        "triangles": mesh.triangle_count,
        "bounds_min": tuple(float(v) for v in mesh.bounds_min),
        "bounds_max": tuple(float(v) for v in mesh.bounds_max),
        "size": tuple(float(v) for v in size),
    }
