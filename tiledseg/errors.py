"""
Exception types raised by the tiled segmentation pipeline.

Fatal errors unwind the whole run; MergeInconsistency is handled inside
the merge step and never reaches the caller.
"""

from typing import Optional, Tuple


class TiledSegError(Exception):
    """Base class for all pipeline errors."""


class InvalidConfiguration(TiledSegError, ValueError):
    """Tile sizing or other settings cannot be satisfied. Raised before any work starts."""


class ModelLoadError(TiledSegError):
    """The model artifact could not be loaded; no tiles are processed."""


class ModelNotFoundError(ModelLoadError):
    """The model path does not exist."""


class MalformedModelError(ModelLoadError):
    """The model artifact exists but could not be read."""


class ResourceExhausted(TiledSegError):
    """A predictor could not be acquired from the pool."""


class TilePredictionError(TiledSegError):
    """
    Prediction failed for a single tile.

    Attributes:
        tile_id: ID of the failing tile
        bounds: (x, y, width, height) of the tile in processing coordinates
    """

    def __init__(
        self,
        message: str,
        tile_id: Optional[str] = None,
        bounds: Optional[Tuple[int, int, int, int]] = None,
    ):
        self.tile_id = tile_id
        self.bounds = bounds
        if tile_id is not None:
            message = f"{message} (tile {tile_id} at {bounds})"
        super().__init__(message)


class ShapeMismatch(TilePredictionError):
    """Model input or output shape does not match the expected tile shape."""


class MergeInconsistency(TiledSegError):
    """Geometry from two or more tiles could not be reconciled."""


class SegmentationCancelled(TiledSegError):
    """The run was cancelled; partial results were discarded."""
