"""
Data structures for tiled segmentation.

Coordinates:
- full resolution: pixel coordinates of the source image
- processing: coordinates inside a Region after downsampling, origin at the
  Region's top-left corner. Tiles and instance masks live here.
"""

import math
from dataclasses import dataclass, field
from typing import List, Tuple, Dict, Any

import numpy as np


@dataclass(frozen=True)
class Region:
    """
    Rectangular area of the source image processed in one run.

    Attributes:
        x: Left edge in full-resolution coordinates
        y: Top edge in full-resolution coordinates
        width: Width in full-resolution pixels
        height: Height in full-resolution pixels
        downsample: Factor between full-resolution and processing pixels
    """
    x: int
    y: int
    width: int
    height: int
    downsample: float = 1.0

    @property
    def processing_width(self) -> int:
        """Width at processing resolution."""
        return int(math.ceil(self.width / self.downsample))

    @property
    def processing_height(self) -> int:
        """Height at processing resolution."""
        return int(math.ceil(self.height / self.downsample))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "downsample": self.downsample,
        }


@dataclass(frozen=True)
class Tile:
    """
    A tile of a Region at processing resolution.

    Attributes:
        id: Unique identifier (e.g., "tile_0_1")
        row: Row index in the tile grid
        col: Column index in the tile grid
        bounds: (x, y, width, height) including padding, clipped to the region
        interior: (x, y, width, height) owned exclusively by this tile
        padding: Configured padding on each side
        touches_boundary: True if any side of the interior lies on the region edge
    """
    id: str
    row: int
    col: int
    bounds: Tuple[int, int, int, int]
    interior: Tuple[int, int, int, int]
    padding: int
    touches_boundary: bool = False

    @property
    def x(self) -> int:
        return self.bounds[0]

    @property
    def y(self) -> int:
        return self.bounds[1]

    @property
    def width(self) -> int:
        return self.bounds[2]

    @property
    def height(self) -> int:
        return self.bounds[3]

    @property
    def pad(self) -> Tuple[int, int, int, int]:
        """Padding actually available on each side (left, top, right, bottom)."""
        bx, by, bw, bh = self.bounds
        ix, iy, iw, ih = self.interior
        return (ix - bx, iy - by, (bx + bw) - (ix + iw), (by + bh) - (iy + ih))

    def interior_slices(self) -> Tuple[slice, slice]:
        """Slices selecting the interior from a buffer covering ``bounds``."""
        left, top, _, _ = self.pad
        _, _, iw, ih = self.interior
        return (slice(top, top + ih), slice(left, left + iw))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "row": self.row,
            "col": self.col,
            "bounds": list(self.bounds),
            "interior": list(self.interior),
            "padding": self.padding,
            "touches_boundary": self.touches_boundary,
        }


@dataclass
class ObjectInstance:
    """
    One segmented object.

    Attributes:
        id: Identifier, "<tile_id>:<channel>:<label>" for tile-local instances
        output_channel: Model output channel the object came from
        mask: Boolean mask at processing resolution
        offset: (x, y) of the mask's top-left corner in region processing coordinates
        downsample: Processing downsample of the run
        origin: (x, y) of the region in full-resolution coordinates
        tile_ids: Tiles the object was assembled from
        polygon: Outline in full-resolution image coordinates
        measurements: Optional measurement values
    """
    id: str
    output_channel: int
    mask: np.ndarray
    offset: Tuple[int, int]
    downsample: float = 1.0
    origin: Tuple[int, int] = (0, 0)
    tile_ids: List[str] = field(default_factory=list)
    polygon: List[Tuple[float, float]] = field(default_factory=list)
    measurements: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_mask(
        cls,
        id: str,
        output_channel: int,
        mask: np.ndarray,
        offset: Tuple[int, int],
        downsample: float = 1.0,
        origin: Tuple[int, int] = (0, 0),
        tile_ids: List[str] = None,
    ) -> "ObjectInstance":
        """Create an instance and compute its outline from the mask."""
        instance = cls(
            id=id,
            output_channel=output_channel,
            mask=mask.astype(bool),
            offset=offset,
            downsample=downsample,
            origin=origin,
            tile_ids=list(tile_ids or []),
        )
        instance.update_polygon()
        return instance

    def update_polygon(self) -> None:
        """Recompute the full-resolution outline from the mask."""
        from ..conversion.contours import mask_to_polygon
        from .transforms import transform_polygon

        ox, oy = self.offset
        local = [(ox + px, oy + py) for px, py in mask_to_polygon(self.mask)]
        self.polygon = transform_polygon(local, self.origin, self.downsample)

    @property
    def bbox(self) -> Tuple[int, int, int, int]:
        """(x1, y1, x2, y2) in region processing coordinates, exclusive end."""
        h, w = self.mask.shape
        return (self.offset[0], self.offset[1], self.offset[0] + w, self.offset[1] + h)

    @property
    def area(self) -> int:
        """Area in processing pixels."""
        return int(np.count_nonzero(self.mask))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (without mask data)."""
        return {
            "id": self.id,
            "output_channel": self.output_channel,
            "bbox": list(self.bbox),
            "area": self.area,
            "tile_ids": list(self.tile_ids),
            "polygon": [{"x": x, "y": y} for x, y in self.polygon],
            "measurements": dict(self.measurements),
        }


@dataclass
class TileResult:
    """
    Instances produced by one tile, handed to the merge step.

    Attributes:
        tile: The processed tile
        instances: Instances in region processing coordinates
    """
    tile: Tile
    instances: List[ObjectInstance] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tile": self.tile.to_dict(),
            "instances": [i.to_dict() for i in self.instances],
        }
