"""
glTF 2.0 Exporter (.glb binary format)

glTF is the preferred format for game engines (Godot, Unity, Unreal).
This exporter writes a single self-contained .glb with:
- Positions, normals, tangents and atlas UVs
- Albedo atlas (and normal atlas) embedded as PNG
- Alpha-tested material (alphaMode MASK)
- Coordinate system transformation for different engines

glTF Structure:
- JSON header describing scene graph, material and textures
- Binary buffer containing geometry and image data
  - Indices (uint16/uint32)
  - Positions, normals (float32 vec3), tangents (float32 vec4)
  - Texture coordinates (float32 vec2)
  - PNG images
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import json
import struct
import logging
import numpy as np

from ..mesh_builder import Mesh
from ..projection import CoordinateSystem
from .common import convert_mesh, encode_png

logger = logging.getLogger(__name__)


# glTF constants
GLTF_VERSION = "2.0"
GENERATOR = "ImpostorGenerator"

GLB_MAGIC = 0x46546C67   # "glTF"
CHUNK_JSON = 0x4E4F534A  # "JSON"
CHUNK_BIN = 0x004E4942   # "BIN\0"

# Component types
UNSIGNED_SHORT = 5123
UNSIGNED_INT = 5125
FLOAT = 5126

# Buffer view targets
ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963

# Sampler settings
LINEAR = 9729
LINEAR_MIPMAP_LINEAR = 9987
CLAMP_TO_EDGE = 33071

# Primitive modes
TRIANGLES = 4


class _BufferBuilder:
    """Appends 4-byte aligned buffer views to one binary blob."""

    def __init__(self):
        self.parts: List[bytes] = []
        self.views: List[Dict[str, Any]] = []
        self.length = 0

    def add(self, data: bytes, target: Optional[int] = None) -> int:
        view = {"buffer": 0, "byteOffset": self.length, "byteLength": len(data)}
        if target is not None:
            view["target"] = target
        self.views.append(view)

        padding = (4 - len(data) % 4) % 4
        self.parts.append(data)
        self.parts.append(b"\x00" * padding)
        self.length += len(data) + padding
        return len(self.views) - 1

    def tobytes(self) -> bytes:
        return b"".join(self.parts)


class GLTFExporter:
    """
    Export an impostor mesh and its atlases to glTF 2.0 binary (.glb).

    Features:
    - Embedded PNG textures, no side files
    - Alpha-tested, unlit-looking material (metallic 0)
    - Double-sided material for the efficient render mode
    - Coordinate system conversion with winding fix on mirroring
    """

    def __init__(
        self,
        coordinate_system: CoordinateSystem = CoordinateSystem.GLTF,
        alpha_cutoff: float = 0.5,
        smoothness: float = 0.0,
        double_sided: bool = True,
        xz_scale: float = 1.0
    ):
        """
        Initialize the exporter.

        Args:
            coordinate_system: Target coordinate system
            alpha_cutoff: Material alpha test threshold
            smoothness: Material smoothness; roughness is 1 - smoothness
            double_sided: Mark the material double-sided (efficient mode)
            xz_scale: Horizontal scale written to the node
        """
        self.coordinate_system = coordinate_system
        self.alpha_cutoff = alpha_cutoff
        self.smoothness = smoothness
        self.double_sided = double_sided
        self.xz_scale = xz_scale

    @classmethod
    def from_settings(cls, settings, coordinate_system: CoordinateSystem = CoordinateSystem.GLTF) -> "GLTFExporter":
        """Build an exporter from ImpostorSettings."""
        return cls(
            coordinate_system=coordinate_system,
            alpha_cutoff=settings.material.alpha_clip,
            smoothness=settings.material.smoothness,
            double_sided=not settings.double_sided_geometry,
            xz_scale=settings.xz_scale
        )

    def export(
        self,
        mesh: Mesh,
        texture_set,
        output_path: Union[str, Path],
        material_name: str = "ImpostorMaterial"
    ):
        """
        Export mesh and atlases to a .glb file.

        Args:
            mesh: Mesh from MeshBuilder
            texture_set: GeneratedTextureSet the mesh was built from
            output_path: Output file path
            material_name: Name for the material
        """
        output_path = Path(output_path)

        if mesh.vertex_count == 0:
            raise ValueError("Cannot export empty mesh")
        if texture_set is None or texture_set.is_empty:
            raise ValueError("Cannot export without an albedo atlas")

        vertices, normals, tangents, triangles = convert_mesh(mesh, self.coordinate_system)

        # glTF puts the UV origin at the top-left
        uvs = mesh.uvs.astype(np.float32).copy()
        uvs[:, 1] = 1.0 - uvs[:, 1]

        indices = triangles.ravel()
        if indices.max() < 65536:
            index_type = UNSIGNED_SHORT
            indices = indices.astype(np.uint16)
        else:
            index_type = UNSIGNED_INT
            indices = indices.astype(np.uint32)

        images = [encode_png(texture_set.albedo)]
        if texture_set.normal is not None and not texture_set.normal.is_empty:
            images.append(encode_png(texture_set.normal))

        gltf, buffer_data = self._build(
            mesh.name, vertices, normals, tangents, uvs, indices, index_type,
            images, material_name
        )
        self._write_glb(output_path, gltf, buffer_data)
        logger.info("Wrote %s (%d vertices, %d images)", output_path, len(vertices), len(images))

    def _build(
        self,
        mesh_name: str,
        vertices: np.ndarray,
        normals: np.ndarray,
        tangents: np.ndarray,
        uvs: np.ndarray,
        indices: np.ndarray,
        index_type: int,
        images: List[bytes],
        material_name: str
    ) -> Tuple[Dict[str, Any], bytes]:
        """Build the glTF JSON structure and its binary buffer."""
        buffer = _BufferBuilder()
        count = len(vertices)

        attributes = [
            ("POSITION", vertices, "VEC3"),
            ("NORMAL", normals, "VEC3"),
            ("TANGENT", tangents, "VEC4"),
            ("TEXCOORD_0", uvs, "VEC2"),
        ]

        accessors = [{
            "bufferView": buffer.add(indices.tobytes(), ELEMENT_ARRAY_BUFFER),
            "componentType": index_type,
            "count": len(indices),
            "type": "SCALAR"
        }]
        primitive_attributes = {}
        for semantic, data, kind in attributes:
            accessor = {
                "bufferView": buffer.add(np.ascontiguousarray(data, dtype=np.float32).tobytes(), ARRAY_BUFFER),
                "componentType": FLOAT,
                "count": count,
                "type": kind
            }
            if semantic == "POSITION":
                accessor["min"] = vertices.min(axis=0).tolist()
                accessor["max"] = vertices.max(axis=0).tolist()
            primitive_attributes[semantic] = len(accessors)
            accessors.append(accessor)

        image_entries = [
            {"bufferView": buffer.add(png), "mimeType": "image/png"}
            for png in images
        ]
        textures = [{"sampler": 0, "source": i} for i in range(len(images))]

        material = {
            "name": material_name,
            "pbrMetallicRoughness": {
                "baseColorTexture": {"index": 0, "texCoord": 0},
                "baseColorFactor": [1.0, 1.0, 1.0, 1.0],
                "metallicFactor": 0.0,
                "roughnessFactor": float(1.0 - self.smoothness)
            },
            "alphaMode": "MASK",
            "alphaCutoff": float(self.alpha_cutoff),
            "doubleSided": bool(self.double_sided)
        }
        if len(images) > 1:
            material["normalTexture"] = {"index": 1, "texCoord": 0}

        gltf = {
            "asset": {
                "version": GLTF_VERSION,
                "generator": GENERATOR
            },
            "scene": 0,
            "scenes": [
                {"nodes": [0]}
            ],
            "nodes": [
                {
                    "mesh": 0,
                    "name": mesh_name,
                    "scale": [float(self.xz_scale), 1.0, float(self.xz_scale)]
                }
            ],
            "meshes": [
                {
                    "primitives": [
                        {
                            "attributes": primitive_attributes,
                            "indices": 0,
                            "material": 0,
                            "mode": TRIANGLES
                        }
                    ],
                    "name": mesh_name
                }
            ],
            "materials": [material],
            "samplers": [{
                "magFilter": LINEAR,
                "minFilter": LINEAR_MIPMAP_LINEAR,
                "wrapS": CLAMP_TO_EDGE,
                "wrapT": CLAMP_TO_EDGE
            }],
            "images": image_entries,
            "textures": textures,
            "accessors": accessors,
            "bufferViews": buffer.views,
            "buffers": [
                {"byteLength": buffer.length}
            ]
        }

        return gltf, buffer.tobytes()

    def _write_glb(
        self,
        output_path: Path,
        gltf: Dict[str, Any],
        buffer_data: bytes
    ):
        """Write the GLB container: 12-byte header, JSON chunk, BIN chunk."""
        json_bytes = json.dumps(gltf, separators=(',', ':')).encode('utf-8')
        json_bytes += b' ' * ((4 - len(json_bytes) % 4) % 4)

        total_length = 12 + 8 + len(json_bytes) + 8 + len(buffer_data)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'wb') as f:
            f.write(struct.pack('<III', GLB_MAGIC, 2, total_length))
            f.write(struct.pack('<II', len(json_bytes), CHUNK_JSON))
            f.write(json_bytes)
            f.write(struct.pack('<II', len(buffer_data), CHUNK_BIN))
            f.write(buffer_data)


def read_glb(path: Union[str, Path]) -> Tuple[Dict[str, Any], bytes]:
    """
    Read a .glb file back into its JSON document and binary chunk.

    Args:
        path: Path to a .glb file

    Returns:
        (gltf_json, bin_chunk)
    """
    data = Path(path).read_bytes()
    magic, version, length = struct.unpack_from('<III', data, 0)
    if magic != GLB_MAGIC or version != 2:
        raise ValueError(f"{path} is not a glTF 2.0 binary file")
    if length != len(data):
        raise ValueError(f"{path}: header length {length} does not match file size {len(data)}")

    json_length, json_type = struct.unpack_from('<II', data, 12)
    if json_type != CHUNK_JSON:
        raise ValueError(f"{path}: first chunk is not JSON")
    gltf = json.loads(data[20:20 + json_length].decode('utf-8'))

    offset = 20 + json_length
    binary = b""
    if offset < len(data):
        bin_length, bin_type = struct.unpack_from('<II', data, offset)
        if bin_type != CHUNK_BIN:
            raise ValueError(f"{path}: second chunk is not BIN")
        binary = data[offset + 8:offset + 8 + bin_length]
    return gltf, binary
