"""
Shared export helpers: atlas PNGs and coordinate-system conversion.
"""

from io import BytesIO
from pathlib import Path
from typing import Dict, Tuple, Union
import logging
import numpy as np

from ..imaging import RasterImage
from ..mesh_builder import Mesh
from ..projection import CoordinateSystem, flips_handedness, transform_vertices

logger = logging.getLogger(__name__)


def encode_png(image: RasterImage) -> bytes:
    """Encode an image as RGBA PNG bytes."""
    if image is None or image.is_empty:
        raise ValueError("Cannot encode an empty image")
    buffer = BytesIO()
    image.to_pil().save(buffer, format="PNG")
    return buffer.getvalue()


def texture_paths(base_path: Union[str, Path]) -> Dict[str, Path]:
    """Atlas file names for a base path: <base>_albedo.png, <base>_normal.png."""
    base_path = Path(base_path)
    stem = base_path.with_suffix("") if base_path.suffix else base_path
    return {
        "albedo": stem.parent / f"{stem.name}_albedo.png",
        "normal": stem.parent / f"{stem.name}_normal.png",
    }


def save_texture_set(texture_set, base_path: Union[str, Path]) -> Dict[str, Path]:
    """
    Write the atlas images of a texture set as PNG files.

    Args:
        texture_set: GeneratedTextureSet
        base_path: Path prefix; any suffix is dropped

    Returns:
        Dictionary mapping "albedo" (and "normal") to the written paths
    """
    if texture_set is None or texture_set.is_empty:
        raise ValueError("Cannot save an empty texture set")

    paths = texture_paths(base_path)
    paths["albedo"].parent.mkdir(parents=True, exist_ok=True)

    written = {}
    texture_set.albedo.to_pil().save(paths["albedo"])
    written["albedo"] = paths["albedo"]
    if texture_set.normal is not None and not texture_set.normal.is_empty:
        texture_set.normal.to_pil().save(paths["normal"])
        written["normal"] = paths["normal"]

    logger.info("Saved %s", ", ".join(str(p) for p in written.values()))
    return written


def convert_mesh(
    mesh: Mesh,
    coordinate_system: CoordinateSystem
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Convert mesh geometry to a target coordinate system.

    A conversion that mirrors space also reverses triangle winding and the
    tangent handedness, so front faces and bitangents survive the mirror.

    Returns:
        (vertices, normals, tangents, triangles) in the target system
    """
    vertices = mesh.vertices.astype(np.float64)
    normals = mesh.normals.astype(np.float64)
    tangents = mesh.tangents.astype(np.float64).copy()
    triangles = mesh.triangles.copy()

    if coordinate_system != CoordinateSystem.INTERNAL:
        source = CoordinateSystem.INTERNAL
        vertices = transform_vertices(vertices, source, coordinate_system)
        normals = transform_vertices(normals, source, coordinate_system)
        tangents[:, :3] = transform_vertices(tangents[:, :3], source, coordinate_system)

        if flips_handedness(source, coordinate_system):
            triangles = triangles[:, [0, 2, 1]]
            tangents[:, 3] = -tangents[:, 3]

    return (vertices.astype(np.float32), normals.astype(np.float32),
            tangents.astype(np.float32), np.ascontiguousarray(triangles))
