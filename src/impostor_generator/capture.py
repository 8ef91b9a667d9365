"""
Capture Orchestration

Runs the per-view capture loop:

    ViewPlanner -> [per view] Renderer -> ImagePostProcessor -> AtlasPacker

inside one renderer session, and owns every intermediate image until it is
either packed into the atlas or released. A failed run leaves nothing
behind: pending snapshots and any atlas already built are released before
the error propagates.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional
import logging
import numpy as np

from .atlas import AtlasImage, AtlasPacker, PlacementRect
from .config import ImpostorSettings
from .errors import CaptureCancelled, InvalidInputError
from .imaging import FLAT_NORMAL_OPAQUE, ImagePostProcessor, RasterImage
from .projection import Bounds3D
from .renderer import MaterialOverride, Renderer
from .views import ViewKind, ViewPlan, ViewPlanner, ViewSpec

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]
CancelCallback = Callable[[], bool]


@dataclass
class GeneratedTextureSet:
    """
    Everything the mesh builder and exporters need from a capture run.

    Attributes:
        albedo: Albedo atlas
        normal: Normal atlas, or None when normals were not generated
        rects: Atlas placement per view, radial views first
        directions: View-from direction per view
        view_widths: Unpadded world width per view
        view_heights: Unpadded world height per view
        view_count: Number of radial views captured
        atlas_width: Atlas width in pixels
        atlas_height: Atlas height in pixels
        bounds: Bounds the views were planned for
    """

    albedo: Optional[AtlasImage]
    normal: Optional[AtlasImage] = None
    rects: List[PlacementRect] = field(default_factory=list)
    directions: List[np.ndarray] = field(default_factory=list)
    view_widths: List[float] = field(default_factory=list)
    view_heights: List[float] = field(default_factory=list)
    view_count: int = 0
    atlas_width: int = 0
    atlas_height: int = 0
    bounds: Optional[Bounds3D] = None

    @property
    def has_top_down(self) -> bool:
        return len(self.rects) > self.view_count

    @property
    def is_empty(self) -> bool:
        return self.albedo is None or self.albedo.is_empty or not self.rects

    def release(self):
        """Drop the atlas buffers."""
        if self.albedo is not None:
            self.albedo.release()
        if self.normal is not None:
            self.normal.release()


class CaptureOrchestrator:
    """
    Captures every planned view and packs the results.

    One instance performs one run; create a new orchestrator per object.

    Example:
        orchestrator = CaptureOrchestrator(renderer, settings)
        texture_set = orchestrator.run(scene.bounds())
    """

    def __init__(
        self,
        renderer: Renderer,
        settings: Optional[ImpostorSettings] = None,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCallback] = None,
        require_normals: bool = False
    ):
        """
        Initialize the orchestrator.

        Args:
            renderer: Renderer to capture through
            settings: Generation settings (default ImpostorSettings())
            on_progress: Called as (views_done, views_total, label) after each view
            should_cancel: Polled between views; returning True aborts the run
            require_normals: Fail instead of substituting flat normals when the
                renderer cannot capture normals
        """
        if renderer is None:
            raise InvalidInputError("A renderer is required")

        self.renderer = renderer
        self.settings = settings or ImpostorSettings()
        self.on_progress = on_progress
        self.should_cancel = should_cancel
        self.require_normals = require_normals

        self.planner = ViewPlanner.from_settings(self.settings)
        self.post_processor = ImagePostProcessor.from_settings(self.settings)
        self.packer = AtlasPacker()

        self._used = False
        self._pending_albedo: List[RasterImage] = []
        self._pending_normal: List[RasterImage] = []

    def run(self, bounds: Bounds3D) -> GeneratedTextureSet:
        """
        Capture, process and pack all views for the given bounds.

        Args:
            bounds: World-space bounds of the object being captured

        Returns:
            GeneratedTextureSet owning the packed atlas(es)

        Raises:
            RuntimeError: This orchestrator already ran
            InvalidInputError: Bad bounds, or normals required but unsupported
            RenderError: The renderer failed on a view
            PackingError: No atlas could be produced
            CaptureCancelled: should_cancel returned True
        """
        if self._used:
            raise RuntimeError("CaptureOrchestrator instances are single-use")
        self._used = True

        capture_normals = self._resolve_normal_mode()
        plan = self.planner.plan(bounds)
        layout = None

        try:
            with self.renderer.session():
                self.renderer.apply_lighting(self.settings.lighting)
                for view in plan:
                    self._check_cancel(view)
                    self._capture_view(view, capture_normals)
                    self._report(len(self._pending_albedo), len(plan), view)

            layout = self.packer.pack(
                self._pending_albedo,
                self._pending_normal if self.settings.generate_normal_map else None
            )
            texture_set = self._build_texture_set(plan, layout, bounds)
        except BaseException:
            if layout is not None:
                layout.release()
            raise
        finally:
            self._release_pending()

        logger.info(
            "Captured %d views (%d radial) into a %dx%d atlas",
            len(plan), plan.radial_count, texture_set.atlas_width, texture_set.atlas_height
        )
        return texture_set

    def _resolve_normal_mode(self) -> bool:
        """True if normals come from the renderer, False if substituted."""
        if not self.settings.generate_normal_map:
            return False
        if self.renderer.supports_normals:
            return True
        if self.require_normals:
            raise InvalidInputError(
                "Renderer cannot capture normals (missing required shader/material capability)"
            )
        logger.warning("Renderer has no normal capture; using a flat normal map")
        return False

    def _check_cancel(self, view: ViewSpec):
        if self.should_cancel is not None and self.should_cancel():
            raise CaptureCancelled(f"Capture cancelled before view {view.index}")

    def _capture_view(self, view: ViewSpec, capture_normals: bool):
        target_height = self.settings.atlas_height
        supersampling = self.settings.supersampling

        albedo = self.renderer.capture(view, target_height, supersampling, MaterialOverride.ALBEDO)
        self._pending_albedo.append(albedo)

        normal = None
        if self.settings.generate_normal_map:
            if capture_normals:
                normal = self.renderer.capture(view, target_height, supersampling, MaterialOverride.NORMAL)
            else:
                normal = RasterImage.filled(albedo.width, albedo.height, FLAT_NORMAL_OPAQUE)
            self._pending_normal.append(normal)

        self.post_processor.process(albedo, normal)

    def _report(self, done: int, total: int, view: ViewSpec):
        if view.kind == ViewKind.TOP_DOWN:
            label = "Top-down view"
        else:
            label = f"View {view.index + 1}/{self.planner.radial_count}"
        logger.debug("%s captured", label)
        if self.on_progress is not None:
            self.on_progress(done, total, label)

    def _build_texture_set(self, plan: ViewPlan, layout, bounds: Bounds3D) -> GeneratedTextureSet:
        return GeneratedTextureSet(
            albedo=layout.albedo,
            normal=layout.normal,
            rects=list(layout.rects),
            directions=[d.copy() for d in plan.directions],
            view_widths=list(plan.widths),
            view_heights=list(plan.heights),
            view_count=plan.radial_count,
            atlas_width=layout.width,
            atlas_height=layout.height,
            bounds=bounds
        )

    def _release_pending(self):
        for image in self._pending_albedo + self._pending_normal:
            image.release()
        self._pending_albedo = []
        self._pending_normal = []
