"""
Main ImpostorGenerator Class

This is the primary interface for the impostor generation pipeline.
It orchestrates:
1. Source model loading
2. Snapshot capture (view planning, rendering, post-processing)
3. Atlas packing
4. Impostor mesh construction
5. Export to various formats

Example Usage:
    generator = ImpostorGenerator(ImpostorSettings(views=8))
    generator.load_mesh("tree.obj")
    generator.generate()
    generator.export_glb("tree_impostor.glb")
"""

from pathlib import Path
from typing import Iterable, List, Optional, Union
import logging

from .capture import CancelCallback, CaptureOrchestrator, GeneratedTextureSet, ProgressCallback
from .config import ImpostorSettings
from .exporters import GLTFExporter, OBJExporter, save_texture_set
from .ingestion import load_scene
from .mesh_builder import Mesh, MeshBuilder, MeshSettings, mesh_stats
from .projection import Bounds3D, CoordinateSystem
from .renderer import MeshRenderer, Renderer, SceneMesh

logger = logging.getLogger(__name__)


class ImpostorGenerator:
    """
    High-level interface for impostor generation.

    Converts a 3D model into a camera-facing impostor: a texture atlas of
    orthographic snapshots plus a simplified radial mesh to drape it over.

    Attributes:
        settings: Generation settings
        scene: The loaded source model
        texture_set: Captured atlas and per-view data
        mesh: The built impostor mesh
    """

    def __init__(
        self,
        settings: Optional[ImpostorSettings] = None,
        renderer: Optional[Renderer] = None
    ):
        """
        Initialize the ImpostorGenerator.

        Args:
            settings: Generation settings (default ImpostorSettings())
            renderer: Renderer to capture with (default: MeshRenderer over
                the loaded scene)
        """
        self.settings = settings or ImpostorSettings()
        self._renderer = renderer
        self._scene: Optional[SceneMesh] = None
        self._bounds: Optional[Bounds3D] = None
        self._texture_set: Optional[GeneratedTextureSet] = None
        self._mesh: Optional[Mesh] = None

    def load_mesh(
        self,
        model_path: Union[str, Path],
        source_system: CoordinateSystem = CoordinateSystem.GLTF
    ) -> "ImpostorGenerator":
        """
        Load a source model from file.

        Args:
            model_path: Path to the model (any format in ingestion.SUPPORTED_FORMATS)
            source_system: Axis convention of the file

        Returns:
            self for method chaining
        """
        return self.load_scene(load_scene(model_path, source_system))

    def load_scene(self, scene: SceneMesh) -> "ImpostorGenerator":
        """
        Use an in-memory scene as the source model.

        Returns:
            self for method chaining
        """
        self._scene = scene
        self._bounds = None
        self._discard_results()
        return self

    def set_renderer(self, renderer: Renderer) -> "ImpostorGenerator":
        """Capture through a custom renderer instead of the MeshRenderer."""
        self._renderer = renderer
        return self

    def capture(
        self,
        bounds: Optional[Bounds3D] = None,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCallback] = None
    ) -> "ImpostorGenerator":
        """
        Capture all views and pack the atlas.

        Args:
            bounds: Bounds to plan views for (default: the scene's bounds)
            on_progress: Progress callback (done, total, label)
            should_cancel: Polled between views to abort the capture

        Returns:
            self for method chaining
        """
        renderer = self._renderer
        if renderer is None:
            if self._scene is None:
                raise RuntimeError("No model loaded. Call load_mesh() first.")
            renderer = MeshRenderer(self._scene, self.settings.lighting)

        if bounds is None:
            if self._scene is None:
                raise RuntimeError("No bounds given and no model loaded.")
            bounds = self._scene.bounds()

        self._discard_results()
        orchestrator = CaptureOrchestrator(
            renderer, self.settings,
            on_progress=on_progress, should_cancel=should_cancel
        )
        self._texture_set = orchestrator.run(bounds)
        self._bounds = bounds
        return self

    def build_mesh(self, mesh_settings: Optional[MeshSettings] = None) -> "ImpostorGenerator":
        """
        Build the impostor mesh from the captured texture set.

        The mesh base is placed at the bottom of the captured bounds, then
        shifted by the manual vertical offset.

        Args:
            mesh_settings: Construction parameters (default: from settings)

        Returns:
            self for method chaining
        """
        if self._texture_set is None:
            raise RuntimeError("Nothing captured. Call capture() first.")

        if mesh_settings is None:
            base_y = float(self._bounds.min[1]) if self._bounds is not None else 0.0
            mesh_settings = MeshSettings.from_settings(
                self.settings, vertical_offset=base_y + self.settings.vertical_offset
            )

        self._mesh = MeshBuilder().build(self._texture_set, mesh_settings)
        return self

    def generate(
        self,
        bounds: Optional[Bounds3D] = None,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCallback] = None
    ) -> "ImpostorGenerator":
        """
        Capture and build the mesh in one step.

        Returns:
            self for method chaining
        """
        self.capture(bounds, on_progress=on_progress, should_cancel=should_cancel)
        return self.build_mesh()

    def export_glb(
        self,
        output_path: Union[str, Path],
        coordinate_system: CoordinateSystem = CoordinateSystem.GLTF
    ):
        """
        Export to glTF 2.0 binary format (.glb), textures embedded.

        Args:
            output_path: Output file path
            coordinate_system: Target coordinate system
        """
        self._require_results()
        exporter = GLTFExporter.from_settings(self.settings, coordinate_system)
        exporter.export(self._mesh, self._texture_set, output_path,
                        material_name=f"{self.settings.base_name}Material")

    def export_gltf(self, output_path: Union[str, Path], **kwargs):
        """Alias for export_glb."""
        self.export_glb(output_path, **kwargs)

    def export_obj(
        self,
        output_path: Union[str, Path],
        coordinate_system: CoordinateSystem = CoordinateSystem.GLTF
    ) -> dict:
        """
        Export to Wavefront OBJ format with MTL and PNG atlases.

        Args:
            output_path: Output file path
            coordinate_system: Target coordinate system

        Returns:
            Dictionary of written files
        """
        self._require_results()
        exporter = OBJExporter(coordinate_system=coordinate_system)
        return exporter.export(self._mesh, self._texture_set, output_path,
                               material_name=f"{self.settings.base_name}Material")

    def export_textures(self, base_path: Union[str, Path]) -> dict:
        """
        Write the atlas images as PNG.

        Returns:
            Dictionary of written files
        """
        if self._texture_set is None:
            raise RuntimeError("Nothing captured. Call capture() first.")
        return save_texture_set(self._texture_set, base_path)

    def export_all(
        self,
        base_path: Union[str, Path],
        formats: Optional[list] = None,
        coordinate_system: CoordinateSystem = CoordinateSystem.GLTF
    ):
        """
        Export to multiple formats at once.

        Args:
            base_path: Base file path (without extension)
            formats: List of formats to export (default: glb and png)
            coordinate_system: Target coordinate system for meshes
        """
        base_path = Path(base_path)
        formats = formats or ["glb", "png"]

        if "glb" in formats or "gltf" in formats:
            self.export_glb(base_path.with_suffix(".glb"), coordinate_system)

        if "obj" in formats:
            self.export_obj(base_path.with_suffix(".obj"), coordinate_system)
        elif "png" in formats:
            # OBJ export already writes the atlases
            self.export_textures(base_path)

    def release(self):
        """Drop the atlas buffers and the mesh."""
        self._discard_results()

    def _discard_results(self):
        if self._texture_set is not None:
            self._texture_set.release()
        self._texture_set = None
        self._mesh = None

    def _require_results(self):
        if self._texture_set is None:
            raise RuntimeError("Nothing captured. Call generate() first.")
        if self._mesh is None:
            self.build_mesh()

    @property
    def scene(self) -> Optional[SceneMesh]:
        return self._scene

    @property
    def texture_set(self) -> Optional[GeneratedTextureSet]:
        """Get the captured texture set."""
        return self._texture_set

    @property
    def mesh(self) -> Optional[Mesh]:
        """Get the current impostor mesh."""
        return self._mesh

    @property
    def vertex_count(self) -> int:
        if self._mesh is None:
            return 0
        return self._mesh.vertex_count

    @property
    def triangle_count(self) -> int:
        if self._mesh is None:
            return 0
        return self._mesh.triangle_count

    def get_mesh_stats(self) -> dict:
        """
        Get mesh and atlas statistics.

        Returns:
            Dictionary with statistics
        """
        if self._mesh is None:
            return {"error": "No mesh"}

        stats = mesh_stats(self._mesh)
        if self._scene is not None:
            stats["source_vertices"] = self._scene.vertex_count
            stats["source_triangles"] = self._scene.triangle_count
        if self._texture_set is not None:
            stats["atlas_size"] = (self._texture_set.atlas_width, self._texture_set.atlas_height)
            stats["views"] = self._texture_set.view_count
        return stats

    def preview(self) -> dict:
        """
        Get a preview of the current state.

        Returns:
            Dictionary with current state information
        """
        info = {
            "model_loaded": self._scene is not None,
            "captured": self._texture_set is not None,
            "meshed": self._mesh is not None,
        }

        if self._scene is not None:
            info["source_name"] = self._scene.name
            info["source_triangles"] = self._scene.triangle_count

        if self._texture_set is not None:
            info["atlas_size"] = (self._texture_set.atlas_width, self._texture_set.atlas_height)
            info["has_normal_map"] = self._texture_set.normal is not None

        if self._mesh is not None:
            info["vertex_count"] = self._mesh.vertex_count
            info["triangle_count"] = self._mesh.triangle_count

        return info


class BatchProcessor:
    """
    Batch processing for multiple models.

    Every model gets its own generator (and so its own capture session)
    with the same settings.
    """

    def __init__(self, settings: Optional[ImpostorSettings] = None):
        """
        Initialize the batch processor.

        Args:
            settings: Settings shared by every model
        """
        self.settings = settings or ImpostorSettings()

    def process_files(
        self,
        model_paths: Iterable[Union[str, Path]],
        output_dir: Union[str, Path],
        formats: Optional[list] = None,
        coordinate_system: CoordinateSystem = CoordinateSystem.GLTF
    ) -> List[str]:
        """
        Generate and export an impostor for each model.

        Args:
            model_paths: Source model files
            output_dir: Output directory
            formats: Export formats
            coordinate_system: Target coordinate system

        Returns:
            List of output base paths
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        outputs = []
        for model_path in model_paths:
            model_path = Path(model_path)
            generator = ImpostorGenerator(self.settings)
            try:
                generator.load_mesh(model_path)
                generator.generate()

                base_path = output_dir / f"{model_path.stem}_{self.settings.base_name}"
                generator.export_all(base_path, formats, coordinate_system)
            finally:
                generator.release()

            logger.info("Processed %s", model_path)
            outputs.append(str(base_path))

        return outputs

    def process_directory(
        self,
        input_dir: Union[str, Path],
        output_dir: Union[str, Path],
        pattern: str = "*.obj",
        **kwargs
    ) -> List[str]:
        """
        Process all models in a directory.

        Args:
            input_dir: Input directory
            output_dir: Output directory
            pattern: Glob pattern for input files
            **kwargs: Arguments passed to process_files

        Returns:
            List of output base paths
        """
        paths = sorted(Path(input_dir).glob(pattern))
        return self.process_files(paths, output_dir, **kwargs)
