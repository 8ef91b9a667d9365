"""
Export modules for impostor meshes and atlases.

Supported formats:
- glTF 2.0 (.glb) - Optimal for game engines (Godot, Unity), textures embedded
- Wavefront (.obj) - Universal legacy support, with .mtl and PNG atlases
- PNG atlases on their own
"""

from .common import save_texture_set
from .gltf_exporter import GLTFExporter, read_glb
from .obj_exporter import OBJExporter

__all__ = ["GLTFExporter", "OBJExporter", "read_glb", "save_texture_set"]
