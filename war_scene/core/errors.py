"""Exceptions raised by scene generation."""


class WarSceneError(Exception):
    """Base class for scene generation failures."""


class InvalidDimensions(WarSceneError, ValueError):
    """Width or height is not a positive, finite number."""

    def __init__(self, width, height):
        self.width = width
        self.height = height
        super().__init__(
            f"Scene dimensions must be positive, got width={width!r}, height={height!r}"
        )


class SurfaceUnavailable(WarSceneError, RuntimeError):
    """The raster surface could not be created."""


class GenerationCancelled(WarSceneError):
    """Cancellation was requested between two layers."""

    def __init__(self, completed_layers):
        self.completed_layers = list(completed_layers)
        super().__init__(
            f"Generation cancelled after {len(self.completed_layers)} layer(s)"
        )
