"""
Capture View Planning

Computes, for every snapshot, where the orthographic capture camera sits,
how large its frustum is and where its clip planes are.

Radial views circle the object around the vertical axis. View i looks from

    d_i = rotate_y(forward, i * 360 / N)

where N is always the *requested* view count. When only the front half of
the views is captured (front_face_only), the captured views keep the
spacing of the full set, so 8 requested views captured front-only are still
45 degrees apart.

An optional top-down view is appended after the radial views; the mesh
builder relies on it living at index N.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple
import logging
import math
import numpy as np

from .errors import InvalidInputError
from .projection import (
    Bounds3D, FORWARD, UP, look_rotation, rotate_y, world_to_local
)

logger = logging.getLogger(__name__)

# Smallest view dimension, guards against flat objects
MIN_VIEW_SIZE = 0.01
MIN_CLIP = 0.01
NEAR_FACTOR = 0.9
FAR_FACTOR = 1.1


class ViewKind(Enum):
    """Kind of capture view."""
    RADIAL = "radial"
    TOP_DOWN = "top_down"


@dataclass(frozen=True)
class ViewSpec:
    """
    One planned orthographic capture.

    Attributes:
        direction: Unit vector from the object center toward the camera
        up: Camera up hint
        ortho_width: Full frustum width in world units (padded)
        ortho_height: Full frustum height in world units (padded)
        near_clip: Near clip distance
        far_clip: Far clip distance
        kind: Radial or top-down
        target: Point the camera looks at (bounds center)
        distance: Camera distance from the target
        index: Position in capture order
    """

    direction: Tuple[float, float, float]
    up: Tuple[float, float, float]
    ortho_width: float
    ortho_height: float
    near_clip: float
    far_clip: float
    kind: ViewKind
    target: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    distance: float = 1.0
    index: int = 0

    @property
    def aspect(self) -> float:
        return self.ortho_width / self.ortho_height

    @property
    def position(self) -> np.ndarray:
        """Camera position in world space."""
        return np.array(self.target) + np.array(self.direction) * self.distance

    @property
    def rotation(self) -> np.ndarray:
        """Camera rotation (columns right, up, forward); forward looks at the target."""
        return look_rotation(-np.array(self.direction), np.array(self.up))

    def pixel_size(self, target_height: int) -> Tuple[int, int]:
        """
        Snapshot size in pixels for a given height.

        Returns:
            (width, height), width rounded from height * aspect, at least 1
        """
        aspect = self.aspect
        if not math.isfinite(aspect) or aspect <= 0:
            aspect = 1.0
        return max(1, int(round(target_height * aspect))), int(target_height)


@dataclass
class ViewPlan:
    """
    Ordered capture plan.

    `widths`, `heights` and `directions` are index-aligned with `views`:
    radial views first, then the top-down view if present.
    """

    views: List[ViewSpec] = field(default_factory=list)
    widths: List[float] = field(default_factory=list)
    heights: List[float] = field(default_factory=list)
    directions: List[np.ndarray] = field(default_factory=list)
    requested_views: int = 0
    radial_count: int = 0
    has_top_down: bool = False

    def __len__(self) -> int:
        return len(self.views)

    def __iter__(self):
        return iter(self.views)

    def add(self, view: ViewSpec, width: float, height: float):
        self.views.append(view)
        self.widths.append(float(width))
        self.heights.append(float(height))
        self.directions.append(np.array(view.direction))


def effective_view_count(views: int, front_face_only: bool) -> int:
    """
    Number of radial views actually captured.

    Front-face-only captures half the requested views (never fewer than 1).
    """
    if front_face_only and views > 1:
        return max(1, views // 2)
    return views


def _clip_planes(distance: float, extent: float) -> Tuple[float, float]:
    near = max(MIN_CLIP, (distance - extent) * NEAR_FACTOR)
    far = (distance + extent) * FAR_FACTOR
    return near, far


class ViewPlanner:
    """
    Plans orthographic capture views around a bounding box.

    Example:
        planner = ViewPlanner(views=8, front_face_only=True)
        plan = planner.plan(Bounds3D((0, 1, 0), (0.5, 1, 0.5)))
        # 4 views, 45 degrees apart
    """

    def __init__(
        self,
        views: int = 6,
        front_face_only: bool = False,
        include_top_down: bool = False,
        capture_distance_offset: float = 2.0,
        frame_padding: float = 0.05
    ):
        """
        Initialize the planner.

        Args:
            views: Requested number of radial views (>= 1)
            front_face_only: Capture only half of the radial views
            include_top_down: Append a top-down view
            capture_distance_offset: Extra camera distance beyond the bounds
            frame_padding: Fractional margin around the object, [0, 0.3]
        """
        if views < 1:
            raise InvalidInputError(f"At least one view is required, got {views}")
        if not 0.0 <= frame_padding <= 0.3:
            raise InvalidInputError(f"frame_padding must be in [0, 0.3], got {frame_padding}")
        if not math.isfinite(capture_distance_offset) or capture_distance_offset < 0:
            raise InvalidInputError("capture_distance_offset must be >= 0")

        self.views = views
        self.front_face_only = front_face_only
        self.include_top_down = include_top_down
        self.capture_distance_offset = capture_distance_offset
        self.frame_padding = frame_padding

    @classmethod
    def from_settings(cls, settings) -> "ViewPlanner":
        """Build a planner from ImpostorSettings."""
        return cls(
            views=settings.views,
            front_face_only=settings.front_face_only,
            include_top_down=settings.include_top_down,
            capture_distance_offset=settings.capture_distance_offset,
            frame_padding=settings.frame_padding
        )

    @property
    def radial_count(self) -> int:
        return effective_view_count(self.views, self.front_face_only)

    @property
    def angle_step(self) -> float:
        """Degrees between neighbouring radial views."""
        return 360.0 / self.views

    def plan(self, bounds: Bounds3D) -> ViewPlan:
        """
        Plan every capture view for the given bounds.

        Args:
            bounds: World-space bounding box of the object

        Returns:
            ViewPlan with radial views first and the top-down view last
        """
        self._validate_bounds(bounds)

        plan = ViewPlan(requested_views=self.views, radial_count=self.radial_count)

        for i in range(self.radial_count):
            view, width, height = self.plan_radial(bounds, i)
            plan.add(view, width, height)

        if self.include_top_down:
            view, width, height = self.plan_top_down(bounds, index=len(plan))
            plan.add(view, width, height)
            plan.has_top_down = True

        logger.debug(
            "Planned %d views (%d radial of %d requested, top-down=%s)",
            len(plan), plan.radial_count, self.views, plan.has_top_down
        )
        return plan

    def plan_radial(self, bounds: Bounds3D, index: int) -> Tuple[ViewSpec, float, float]:
        """
        Plan radial view `index`.

        Returns:
            (view, world_width, world_height) where the sizes are the tight,
            unpadded extents of the box as seen from this view
        """
        direction = rotate_y(FORWARD, index * self.angle_step)

        extents = bounds.extents_array
        max_extent = max(extents[0], extents[1], extents[2], MIN_VIEW_SIZE)
        distance = max_extent + self.capture_distance_offset

        # Project the box corners into camera space for a tight frame
        center = bounds.center_array
        position = center + direction * distance
        rotation = look_rotation(center - position, UP)
        local = world_to_local(bounds.corners(), position, rotation)
        span = local.max(axis=0) - local.min(axis=0)
        width = max(MIN_VIEW_SIZE, float(span[0]))
        height = max(MIN_VIEW_SIZE, float(span[1]))

        half_height = max(MIN_VIEW_SIZE, (height / 2.0) * (1.0 + self.frame_padding))
        aspect = width / height
        near, far = _clip_planes(distance, max_extent)

        view = self._make_view(
            direction, UP, half_height, aspect, near, far,
            ViewKind.RADIAL, bounds, distance, index
        )
        return view, width, height

    def plan_top_down(self, bounds: Bounds3D, index: int = 0) -> Tuple[ViewSpec, float, float]:
        """
        Plan the top-down view.

        The camera looks straight down with +Z as its up vector, so the
        snapshot's roll does not depend on the lighting setup. Width and
        height are the box's X and Z sizes.
        """
        size = bounds.size
        width, depth = float(size[0]), float(size[2])
        if width <= 0 or depth <= 0:
            raise InvalidInputError(
                f"Bounds are flat from above (width {width}, depth {depth}); "
                "cannot plan a top-down view"
            )

        half_y = bounds.extents[1]
        distance = half_y + self.capture_distance_offset
        near, far = _clip_planes(distance, half_y)

        aspect = width / max(0.001, depth)
        half_height = max(MIN_VIEW_SIZE, (depth / 2.0) * (1.0 + self.frame_padding))

        view = self._make_view(
            UP.copy(), FORWARD.copy(), half_height, aspect, near, far,
            ViewKind.TOP_DOWN, bounds, distance, index
        )
        return view, width, depth

    @staticmethod
    def _make_view(
        direction: np.ndarray,
        up: np.ndarray,
        half_height: float,
        aspect: float,
        near: float,
        far: float,
        kind: ViewKind,
        bounds: Bounds3D,
        distance: float,
        index: int
    ) -> ViewSpec:
        ortho_height = 2.0 * half_height
        ortho_width = ortho_height * aspect
        if not (ortho_width > 0 and ortho_height > 0) or not math.isfinite(ortho_width):
            raise InvalidInputError(
                f"View {index} is degenerate ({ortho_width} x {ortho_height})"
            )
        return ViewSpec(
            direction=tuple(float(v) for v in direction),
            up=tuple(float(v) for v in up),
            ortho_width=float(ortho_width),
            ortho_height=float(ortho_height),
            near_clip=float(near),
            far_clip=float(far),
            kind=kind,
            target=bounds.center,
            distance=float(distance),
            index=index
        )

    @staticmethod
    def _validate_bounds(bounds: Bounds3D):
        if bounds is None:
            raise InvalidInputError("No bounds provided")
        if not bounds.is_finite():
            raise InvalidInputError(f"Bounds are not finite: {bounds}")
        if any(e < 0 for e in bounds.extents):
            raise InvalidInputError(f"Bounds have negative extents: {bounds.extents}")
        if float(np.dot(bounds.size, bounds.size)) < 0.0001:
            raise InvalidInputError(f"Bounds have (near) zero size: {tuple(bounds.size)}")
