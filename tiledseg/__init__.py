"""
Tiled instance segmentation for whole-slide images.

Splits large images into padded tiles, runs a predictor on each tile
through a bounded pool, and stitches the per-tile objects back together.
"""

__version__ = "0.1.0"

from .errors import (
    InvalidConfiguration,
    MalformedModelError,
    MergeInconsistency,
    ModelLoadError,
    ModelNotFoundError,
    ResourceExhausted,
    SegmentationCancelled,
    ShapeMismatch,
    TiledSegError,
    TilePredictionError,
)
from .config import ChannelLayout, Device, SegmentationConfig, TransformSpec
from .tiling import ObjectInstance, Region, Tile, TileResult, Tiler, merge_instances
from .inference import ModelInfo, ModelLoader, PredictorPool, TilePredictionProcessor
from .sources import ArraySource, CollectionSink, ImageSource, ObjectSink
from .pipeline import ProcessingProgress, SegmentationTask, run_segmentation

__all__ = [
    # Errors
    "InvalidConfiguration",
    "MalformedModelError",
    "MergeInconsistency",
    "ModelLoadError",
    "ModelNotFoundError",
    "ResourceExhausted",
    "SegmentationCancelled",
    "ShapeMismatch",
    "TiledSegError",
    "TilePredictionError",
    # Config
    "ChannelLayout",
    "Device",
    "SegmentationConfig",
    "TransformSpec",
    # Tiling
    "ObjectInstance",
    "Region",
    "Tile",
    "TileResult",
    "Tiler",
    "merge_instances",
    # Inference
    "ModelInfo",
    "ModelLoader",
    "PredictorPool",
    "TilePredictionProcessor",
    # Host boundaries
    "ArraySource",
    "CollectionSink",
    "ImageSource",
    "ObjectSink",
    # Pipeline
    "ProcessingProgress",
    "SegmentationTask",
    "run_segmentation",
]
