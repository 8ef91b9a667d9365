"""
Exception Types

Every failure in the pipeline is fatal to the current generation call.
Nothing is retried internally; the caller gets the specific error kind:

- InvalidInputError: degenerate bounds, zero views, bad settings,
  missing renderer capability
- RenderError: the renderer could not produce a frame
- PackingError: the atlas would have zero area
- PreconditionError: not enough atlas entries for the requested geometry
- CaptureCancelled: the caller aborted between two views
"""

from typing import List, Optional


class ImpostorError(Exception):
    """Base class for impostor generation errors."""
    pass


class InvalidInputError(ImpostorError, ValueError):
    """Input bounds, settings or images are unusable."""
    pass


class RenderError(ImpostorError, RuntimeError):
    """The renderer failed to produce an image for a view."""
    pass


class PackingError(ImpostorError):
    """
    No atlas could be produced.

    The processed per-view images are kept on the exception so a caller
    that wants to inspect or salvage them can do so explicitly.
    """

    def __init__(self, message: str, snapshots: Optional[List] = None):
        super().__init__(message)
        self.snapshots = list(snapshots) if snapshots else []


class PreconditionError(ImpostorError):
    """The texture set does not satisfy what the mesh build needs."""
    pass


class CaptureCancelled(ImpostorError):
    """Capture was cancelled between views."""
    pass
