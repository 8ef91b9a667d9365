"""
Spatial Mathematics for Impostor Capture

This module provides the bounding volume type, the rotations used to aim
capture cameras and orient impostor planes, and coordinate-system transforms
for export.

Coordinate Systems:
- Internal: Y-up, left-handed (+X Right, +Y Up, +Z Forward)
- glTF / Godot: Y-up, right-handed (+X Right, +Y Up, +Z Back)
- Blender: Z-up, right-handed (+X Right, +Y Forward, +Z Up)

All rotations are 3x3 matrices whose columns are the rotated basis vectors
(right, up, forward).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple
import math
import numpy as np
from scipy.spatial.transform import Rotation

from .errors import InvalidInputError


RIGHT = np.array([1.0, 0.0, 0.0])
UP = np.array([0.0, 1.0, 0.0])
FORWARD = np.array([0.0, 0.0, 1.0])


class CoordinateSystem(Enum):
    """Target coordinate system for export."""
    INTERNAL = "internal"  # Y-up, left-handed
    GLTF = "gltf"          # Y-up, right-handed
    GODOT = "godot"        # Y-up, right-handed (same axes as glTF)
    BLENDER = "blender"    # Z-up, right-handed


@dataclass(frozen=True)
class Bounds3D:
    """
    Axis-aligned bounding box.

    Attributes:
        center: Box center (3,)
        extents: Half sizes along each axis (3,)
    """

    center: Tuple[float, float, float]
    extents: Tuple[float, float, float]

    def __post_init__(self):
        center = tuple(float(v) for v in self.center)
        extents = tuple(float(v) for v in self.extents)
        if len(center) != 3 or len(extents) != 3:
            raise InvalidInputError("Bounds3D needs 3D center and extents")
        object.__setattr__(self, "center", center)
        object.__setattr__(self, "extents", extents)

    @classmethod
    def from_points(cls, points: np.ndarray) -> "Bounds3D":
        """Tight bounds around an (N, 3) point array."""
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3 or len(points) == 0:
            raise InvalidInputError("from_points needs a non-empty (N, 3) array")
        lo = points.min(axis=0)
        hi = points.max(axis=0)
        return cls(tuple((lo + hi) / 2.0), tuple((hi - lo) / 2.0))

    @property
    def center_array(self) -> np.ndarray:
        return np.array(self.center, dtype=np.float64)

    @property
    def extents_array(self) -> np.ndarray:
        return np.array(self.extents, dtype=np.float64)

    @property
    def size(self) -> np.ndarray:
        """Full box size (2 * extents)."""
        return self.extents_array * 2.0

    @property
    def min(self) -> np.ndarray:
        return self.center_array - self.extents_array

    @property
    def max(self) -> np.ndarray:
        return self.center_array + self.extents_array

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.center + self.extents)

    def corners(self) -> np.ndarray:
        """
        The 8 box corners.

        Returns:
            Array of shape (8, 3)
        """
        signs = np.array(
            [[sx, sy, sz] for sx in (-1, 1) for sy in (-1, 1) for sz in (-1, 1)],
            dtype=np.float64
        )
        return self.center_array + signs * self.extents_array


def rotate_y(vector: np.ndarray, degrees: float) -> np.ndarray:
    """
    Rotate a vector about the vertical axis.

    Positive angles turn +Z toward +X.
    """
    return Rotation.from_euler("y", degrees, degrees=True).apply(np.asarray(vector, dtype=np.float64))


def euler_rotation(angles: Tuple[float, float, float]) -> np.ndarray:
    """
    Rotation matrix from (x, y, z) Euler angles in degrees.

    Applied in z, x, y order, the convention used for light rotations.
    """
    x, y, z = angles
    return Rotation.from_euler("zxy", [z, x, y], degrees=True).as_matrix()


def look_rotation(forward: np.ndarray, up: np.ndarray = UP) -> np.ndarray:
    """
    Rotation whose forward axis points along `forward`.

    Args:
        forward: Desired forward direction (need not be normalized)
        up: Hint for the up direction

    Returns:
        3x3 matrix with columns (right, up, forward)
    """
    f = np.asarray(forward, dtype=np.float64)
    norm = np.linalg.norm(f)
    if norm < 1e-12:
        raise InvalidInputError("look_rotation needs a non-zero forward vector")
    f = f / norm

    u = np.asarray(up, dtype=np.float64)
    right = np.cross(u, f)
    if np.linalg.norm(right) < 1e-9:
        # Forward is parallel to the up hint; pick any perpendicular
        fallback = FORWARD if abs(f[2]) < 0.9 else RIGHT
        right = np.cross(fallback, f)
    right = right / np.linalg.norm(right)
    true_up = np.cross(f, right)

    return np.column_stack([right, true_up, f])


def world_to_local(points: np.ndarray, position: np.ndarray, rotation: np.ndarray) -> np.ndarray:
    """
    Transform world points into the local space of a posed object.

    Args:
        points: Array of shape (N, 3)
        position: Object position (3,)
        rotation: Object rotation, 3x3

    Returns:
        Local-space points of shape (N, 3)
    """
    return (np.asarray(points, dtype=np.float64) - position) @ rotation


def get_coordinate_transform(
    source: CoordinateSystem,
    target: CoordinateSystem
) -> np.ndarray:
    """
    Get the 3x3 transformation matrix between coordinate systems.

    Args:
        source: Source coordinate system
        target: Target coordinate system

    Returns:
        3x3 transformation matrix
    """
    if source == target:
        return np.eye(3, dtype=np.float64)

    # Internal (left-handed, +Z forward) to glTF (right-handed): mirror Z
    internal_to_gltf = np.array([
        [1, 0, 0],
        [0, 1, 0],
        [0, 0, -1]
    ], dtype=np.float64)

    # Internal to Blender: x' = x, y' = z, z' = y
    internal_to_blender = np.array([
        [1, 0, 0],
        [0, 0, 1],
        [0, 1, 0]
    ], dtype=np.float64)

    transforms = {
        (CoordinateSystem.INTERNAL, CoordinateSystem.GLTF): internal_to_gltf,
        (CoordinateSystem.INTERNAL, CoordinateSystem.GODOT): internal_to_gltf,
        (CoordinateSystem.INTERNAL, CoordinateSystem.BLENDER): internal_to_blender,
    }

    if (source, target) in transforms:
        return transforms[(source, target)]

    if (target, source) in transforms:
        return np.linalg.inv(transforms[(target, source)])

    # Chain through internal
    if source != CoordinateSystem.INTERNAL and target != CoordinateSystem.INTERNAL:
        to_internal = get_coordinate_transform(source, CoordinateSystem.INTERNAL)
        from_internal = get_coordinate_transform(CoordinateSystem.INTERNAL, target)
        return from_internal @ to_internal

    raise ValueError(f"No transform defined from {source} to {target}")


def transform_vertices(
    vertices: np.ndarray,
    source: CoordinateSystem,
    target: CoordinateSystem
) -> np.ndarray:
    """
    Transform an array of vertices between coordinate systems.

    Args:
        vertices: Array of shape (N, 3) containing vertex positions
        source: Source coordinate system
        target: Target coordinate system

    Returns:
        Transformed vertices array of shape (N, 3)
    """
    matrix = get_coordinate_transform(source, target)
    return (matrix @ vertices.T).T


def flips_handedness(source: CoordinateSystem, target: CoordinateSystem) -> bool:
    """True if converting between the systems mirrors space (winding must flip)."""
    return bool(np.linalg.det(get_coordinate_transform(source, target)) < 0)
