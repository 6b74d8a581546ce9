"""
Configuration module for tiled segmentation.
"""

from .segmentation_config import (
    ChannelLayout,
    Device,
    SegmentationConfig,
    TransformSpec,
    default_preprocessing,
)

__all__ = [
    "ChannelLayout",
    "Device",
    "SegmentationConfig",
    "TransformSpec",
    "default_preprocessing",
]
