"""
Tiled Processing Module

Splits a region into padded tiles whose interiors cover it exactly, and
merges per-tile object instances across the tile seams.
"""

from .models import ObjectInstance, Region, Tile, TileResult
from .tiler import Tiler, compute_tiles, downsample_for_pixel_size
from .transforms import processing_to_full, read_request, transform_polygon
from .overlap import SharedEdge, boundary_extent, boundary_overlap, find_shared_edges
from .merging import MergeCandidate, find_merge_candidates, fuse_instances, merge_instances

__all__ = [
    # Models
    "ObjectInstance",
    "Region",
    "Tile",
    "TileResult",
    # Tiler
    "Tiler",
    "compute_tiles",
    "downsample_for_pixel_size",
    # Transforms
    "processing_to_full",
    "read_request",
    "transform_polygon",
    # Overlap
    "SharedEdge",
    "boundary_extent",
    "boundary_overlap",
    "find_shared_edges",
    # Merging
    "MergeCandidate",
    "find_merge_candidates",
    "fuse_instances",
    "merge_instances",
]
