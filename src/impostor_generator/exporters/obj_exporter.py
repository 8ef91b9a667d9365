"""
Wavefront OBJ Format Exporter

OBJ is a universal text-based format supported by virtually all 3D software.
The impostor is written as:
- .obj with positions, texture coordinates and normals
- .mtl referencing the atlas PNGs (map_Kd, map_d, map_Bump)
- <name>_albedo.png / <name>_normal.png atlases

Limitations:
- No tangents (importers recompute them)
- Alpha testing depends on the importer honouring map_d
"""

from pathlib import Path
from typing import Dict, List, Union
import logging
import numpy as np

from ..mesh_builder import Mesh
from ..projection import CoordinateSystem
from .common import convert_mesh, save_texture_set

logger = logging.getLogger(__name__)


class OBJExporter:
    """
    Export an impostor mesh to Wavefront OBJ + MTL + PNG.

    OBJ keeps the UV origin at the bottom-left, so UVs are written as-is.
    """

    def __init__(
        self,
        coordinate_system: CoordinateSystem = CoordinateSystem.GLTF,
        include_normals: bool = True
    ):
        """
        Initialize the exporter.

        Args:
            coordinate_system: Target coordinate system
            include_normals: Whether to write vertex normals
        """
        self.coordinate_system = coordinate_system
        self.include_normals = include_normals

    def export(
        self,
        mesh: Mesh,
        texture_set,
        output_path: Union[str, Path],
        material_name: str = "ImpostorMaterial"
    ) -> Dict[str, Path]:
        """
        Export mesh to OBJ, with its MTL file and atlas images.

        Args:
            mesh: Mesh from MeshBuilder
            texture_set: GeneratedTextureSet the mesh was built from
            output_path: Output file path (.obj)
            material_name: Name for the material

        Returns:
            Dictionary of written files: "obj", "mtl", "albedo" (, "normal")
        """
        output_path = Path(output_path)

        if mesh.vertex_count == 0:
            raise ValueError("Cannot export empty mesh")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        textures = save_texture_set(texture_set, output_path)
        mtl_path = output_path.with_suffix('.mtl')

        vertices, normals, _, triangles = convert_mesh(mesh, self.coordinate_system)

        lines = []
        lines.append("# Impostor Generator OBJ Export")
        lines.append(f"# Vertices: {len(vertices)}")
        lines.append(f"# Triangles: {len(triangles)}")
        lines.append("")
        lines.append(f"mtllib {mtl_path.name}")
        lines.append(f"o {mesh.name}")
        lines.append("")

        for v in vertices:
            lines.append(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f}")
        for uv in mesh.uvs:
            lines.append(f"vt {uv[0]:.6f} {uv[1]:.6f}")
        if self.include_normals:
            for n in normals:
                lines.append(f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}")
        lines.append("")

        lines.append(f"usemtl {material_name}")
        lines.extend(self._face_lines(triangles))

        with open(output_path, 'w') as f:
            f.write('\n'.join(lines) + '\n')

        self._write_mtl(mtl_path, material_name, textures)

        written = {"obj": output_path, "mtl": mtl_path}
        written.update(textures)
        logger.info("Wrote %s", output_path)
        return written

    def _face_lines(self, triangles: np.ndarray) -> List[str]:
        lines = []
        for tri in triangles + 1:
            if self.include_normals:
                lines.append("f " + " ".join(f"{i}/{i}/{i}" for i in tri))
            else:
                lines.append("f " + " ".join(f"{i}/{i}" for i in tri))
        return lines

    def _write_mtl(self, mtl_path: Path, material_name: str, textures: Dict[str, Path]):
        """Write MTL material file."""
        albedo = textures["albedo"].name

        lines = []
        lines.append("# Impostor Generator MTL Export")
        lines.append("")
        lines.append(f"newmtl {material_name}")
        lines.append("Kd 1.0000 1.0000 1.0000")  # Diffuse comes from the atlas
        lines.append("Ka 0.0000 0.0000 0.0000")
        lines.append("Ks 0.0 0.0 0.0")
        lines.append("Ns 0")
        lines.append("d 1.0")
        lines.append("illum 1")
        lines.append(f"map_Kd {albedo}")
        lines.append(f"map_d {albedo}")
        if "normal" in textures:
            lines.append(f"map_Bump {textures['normal'].name}")
        lines.append("")

        with open(mtl_path, 'w') as f:
            f.write('\n'.join(lines))
