"""
Exception types raised by the batch pipeline.

Per-item failures (geometry, decode, analysis) are caught by the scheduler and
recorded on the item. Only capacity and configuration errors reach the caller.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class GeometryError(PipelineError, ValueError):
    """Invalid or degenerate geometry passed to a transform."""


class OutOfBoundsError(GeometryError):
    """Crop rectangle is not fully contained in the source buffer."""


class DecodeError(PipelineError):
    """Source bytes could not be decoded into a raster."""


class AnalysisError(PipelineError):
    """The external analysis call failed (transport or remote error)."""


class CapacityExceededError(PipelineError):
    """Adding items would exceed the batch's hard item cap."""

    def __init__(self, requested: int, available: int, limit: int):
        self.requested = requested
        self.available = available
        self.limit = limit
        super().__init__(
            f"Maximum batch size is {limit} images. "
            f"Tried to add {requested}, only {available} more allowed."
        )


class ConfigError(PipelineError, ValueError):
    """Malformed pipeline configuration."""


class InvalidTransitionError(PipelineError):
    """An item was asked to move to a status its current status cannot reach."""
