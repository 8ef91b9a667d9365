"""
Impostor Generator
==================

A pipeline for converting 3D models into camera-facing impostors.

An impostor replaces a detailed model at a distance: a handful of
orthographic snapshots, packed side by side into one texture atlas, draped
over a few crossed planes that approximate the model's silhouette from
every horizontal angle.

Key Features:
- Radial view planning with tight per-view framing
- Alpha clipping and edge padding against mipmap halos
- Single-row atlas packing with matching normal atlas
- Quad or tapered octagon planes, optional back faces and canopy quads
- Numba-accelerated rasterization and tangent generation
- Export to glTF 2.0 (.glb) and Wavefront (.obj) with PNG atlases

Example Usage:
    from impostor_generator import ImpostorGenerator, ImpostorSettings

    generator = ImpostorGenerator(ImpostorSettings(views=8))
    generator.load_mesh("tree.obj")
    generator.generate()
    generator.export_glb("tree_impostor.glb")
"""

__version__ = "1.0.0"

from .config import (
    HorizontalCrossSection, ImpostorSettings, LightingSettings, MaterialSettings,
    MeshProfile, OctagonParams, RenderMode
)
from .errors import (
    CaptureCancelled, ImpostorError, InvalidInputError, PackingError,
    PreconditionError, RenderError
)
from .projection import Bounds3D, CoordinateSystem
from .views import ViewPlanner, ViewSpec
from .imaging import ImagePostProcessor, RasterImage
from .atlas import AtlasPacker, PlacementRect
from .renderer import MaterialOverride, MeshRenderer, Renderer, SceneMesh
from .capture import CaptureOrchestrator, GeneratedTextureSet
from .mesh_builder import Mesh, MeshBuilder, MeshSettings
from .generator import BatchProcessor, ImpostorGenerator

__all__ = [
    "ImpostorGenerator",
    "BatchProcessor",
    "ImpostorSettings",
    "LightingSettings",
    "MaterialSettings",
    "HorizontalCrossSection",
    "OctagonParams",
    "MeshProfile",
    "RenderMode",
    "Bounds3D",
    "CoordinateSystem",
    "ViewPlanner",
    "ViewSpec",
    "RasterImage",
    "ImagePostProcessor",
    "AtlasPacker",
    "PlacementRect",
    "Renderer",
    "MeshRenderer",
    "MaterialOverride",
    "SceneMesh",
    "CaptureOrchestrator",
    "GeneratedTextureSet",
    "Mesh",
    "MeshBuilder",
    "MeshSettings",
    "ImpostorError",
    "InvalidInputError",
    "RenderError",
    "PackingError",
    "PreconditionError",
    "CaptureCancelled",
]
