"""
Generation Settings

All options recognised by the pipeline, grouped into small dataclasses.
Validation happens in __post_init__ so an invalid settings object can never
reach the capture loop.

Defaults follow the values that work well for foliage and props:
6 views, 512 px atlas height, 5% frame padding, 3 edge padding iterations.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple
import math

from .errors import InvalidInputError


# Preset tables offered by the CLI
RESOLUTION_PRESETS = (128, 256, 512, 1024, 2048)
VIEW_PRESETS = (4, 6, 8, 12, 16)
SUPERSAMPLING_PRESETS = (1, 2, 4)


class MeshProfile(Enum):
    """Cross-section shape of each radial plane."""
    QUAD = "quad"          # Plain rectangle, 2 triangles
    OCTAGON = "octagon"    # Tapered 8-vertex outline, 6 triangles


class RenderMode(Enum):
    """How the back side of each plane is produced."""
    EFFICIENT = "efficient"        # Single planes, double-sided material
    HIGH_QUALITY = "high_quality"  # Explicit back-facing planes


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


@dataclass
class OctagonParams:
    """
    Shape of the octagon profile, all values as fractions.

    Attributes:
        bottom_width_frac: Base width relative to the widest part
        top_width_frac: Top width relative to the widest part
        shoulder_center_frac: Vertical center of the widest part
        shoulder_height_frac: Vertical extent of the widest part
    """

    bottom_width_frac: float = 0.3
    top_width_frac: float = 0.2
    shoulder_center_frac: float = 0.5
    shoulder_height_frac: float = 0.4

    def __post_init__(self):
        for name in ("bottom_width_frac", "top_width_frac",
                     "shoulder_center_frac", "shoulder_height_frac"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidInputError(f"{name} must be in [0, 1], got {value}")


@dataclass
class HorizontalCrossSection:
    """
    A horizontal quad textured with the top-down snapshot.

    Attributes:
        height_fraction: Vertical position, 0 = bottom, 1 = top
        size_multiplier: Side length relative to the average radial width
        rotation_degrees: Rotation about the vertical axis
    """

    height_fraction: float
    size_multiplier: float = 0.5
    rotation_degrees: float = 0.0

    def __post_init__(self):
        self.height_fraction = _clamp01(self.height_fraction)
        self.size_multiplier = _clamp01(self.size_multiplier)
        self.rotation_degrees = float(self.rotation_degrees)

    @classmethod
    def parse(cls, text: str) -> "HorizontalCrossSection":
        """Parse "height[:size[:rotation]]", e.g. "0.6:0.8:45"."""
        parts = [p for p in text.split(":") if p]
        if not 1 <= len(parts) <= 3:
            raise InvalidInputError(f"Invalid cross-section definition: {text!r}")
        try:
            values = [float(p) for p in parts]
        except ValueError:
            raise InvalidInputError(f"Invalid cross-section definition: {text!r}")
        return cls(*values)


@dataclass
class LightingSettings:
    """
    Lighting used by the reference renderer while capturing.

    Rotations are Euler angles in degrees (x, y, z), relative to the camera.
    """

    ambient_multiplier: float = 1.0
    ambient_intensity: float = 1.0
    key_intensity: float = 1.0
    key_rotation: Tuple[float, float, float] = (45.0, -30.0, 0.0)

    def __post_init__(self):
        if not 0.0 <= self.ambient_multiplier <= 3.0:
            raise InvalidInputError("ambient_multiplier must be in [0, 3]")
        if not 0.0 <= self.ambient_intensity <= 3.0:
            raise InvalidInputError("ambient_intensity must be in [0, 3]")
        if not 0.0 <= self.key_intensity <= 5.0:
            raise InvalidInputError("key_intensity must be in [0, 5]")
        self.key_rotation = tuple(float(v) for v in self.key_rotation)
        if len(self.key_rotation) != 3:
            raise InvalidInputError("key_rotation needs three Euler angles")

    @property
    def fill_rotation(self) -> Tuple[float, float, float]:
        """Fill light sits opposite and slightly above the key light."""
        x, y, z = self.key_rotation
        return (x + 30.0, y + 150.0, z + 20.0)

    @property
    def fill_intensity(self) -> float:
        return self.key_intensity * 0.45


@dataclass
class MaterialSettings:
    """Properties written to the exported material."""

    alpha_clip: float = 0.5
    smoothness: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.alpha_clip <= 1.0:
            raise InvalidInputError("alpha_clip must be in [0, 1]")
        if not 0.0 <= self.smoothness <= 1.0:
            raise InvalidInputError("smoothness must be in [0, 1]")


@dataclass
class ImpostorSettings:
    """
    Complete configuration for one impostor generation run.

    Attributes:
        views: Number of radial views around the object
        front_face_only: Capture only half the radial views
        atlas_height: Height in pixels of every snapshot and of the atlas
        supersampling: Render scale before box downsampling (1, 2 or 4)
        edge_padding: Bleed color into transparent texels
        edge_padding_iterations: How many pixel rings the bleed reaches
        alpha_clip_threshold: Alpha at or above this becomes opaque
        generate_normal_map: Capture a normal atlas as well
        profile: Radial plane shape
        octagon: Octagon shape (used with MeshProfile.OCTAGON)
        render_mode: Efficient (single planes) or high quality (front+back)
        cross_sections: Horizontal quads using the top-down snapshot
        include_top_down: Capture the top-down view
        capture_distance_offset: Extra camera distance beyond the bounds
        frame_padding: Fractional margin around the object in each snapshot
        vertical_offset: Manual pivot correction added to the mesh, meters
        quad_offset: Spacing between consecutive radial planes, against z-fighting
        xz_scale: Horizontal scale of the exported node
        base_name: Prefix used for exported files
    """

    views: int = 6
    front_face_only: bool = False
    atlas_height: int = 512
    supersampling: int = 1
    edge_padding: bool = True
    edge_padding_iterations: int = 3
    alpha_clip_threshold: float = 0.1
    generate_normal_map: bool = True
    profile: MeshProfile = MeshProfile.QUAD
    octagon: OctagonParams = field(default_factory=OctagonParams)
    render_mode: RenderMode = RenderMode.EFFICIENT
    cross_sections: List[HorizontalCrossSection] = field(default_factory=list)
    include_top_down: bool = False
    capture_distance_offset: float = 2.0
    frame_padding: float = 0.05
    vertical_offset: float = -0.2
    quad_offset: float = 0.001
    lighting: LightingSettings = field(default_factory=LightingSettings)
    material: MaterialSettings = field(default_factory=MaterialSettings)
    xz_scale: float = 1.0
    base_name: str = "Impostor"

    def __post_init__(self):
        if isinstance(self.profile, str):
            self.profile = MeshProfile(self.profile)
        if isinstance(self.render_mode, str):
            self.render_mode = RenderMode(self.render_mode)

        if self.views < 1:
            raise InvalidInputError(f"views must be >= 1, got {self.views}")
        if self.atlas_height < 1:
            raise InvalidInputError(f"atlas_height must be >= 1, got {self.atlas_height}")
        if self.supersampling not in SUPERSAMPLING_PRESETS:
            raise InvalidInputError(
                f"supersampling must be one of {SUPERSAMPLING_PRESETS}, got {self.supersampling}"
            )
        if not 1 <= self.edge_padding_iterations <= 10:
            raise InvalidInputError("edge_padding_iterations must be in [1, 10]")
        if not 0.0 < self.alpha_clip_threshold < 1.0:
            raise InvalidInputError("alpha_clip_threshold must be in (0, 1)")
        if not 0.0 <= self.frame_padding <= 0.3:
            raise InvalidInputError("frame_padding must be in [0, 0.3]")
        if not math.isfinite(self.capture_distance_offset) or self.capture_distance_offset < 0:
            raise InvalidInputError("capture_distance_offset must be >= 0")
        if not math.isfinite(self.quad_offset) or self.quad_offset < 0:
            raise InvalidInputError(f"quad_offset must be >= 0, got {self.quad_offset}")
        if not 1.0 <= self.xz_scale <= 2.0:
            raise InvalidInputError("xz_scale must be in [1, 2]")
        if self.front_face_only and self.render_mode == RenderMode.HIGH_QUALITY:
            raise InvalidInputError(
                "front_face_only halves the captured views and cannot be "
                "combined with the high quality render mode"
            )

        # Cross-sections are textured from the top-down snapshot
        if self.cross_sections:
            self.include_top_down = True

    @property
    def double_sided_geometry(self) -> bool:
        return self.render_mode == RenderMode.HIGH_QUALITY
