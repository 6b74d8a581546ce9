"""
Tile grid computation for region processing.
"""

import logging
from typing import List, Tuple, Optional

from ..config.segmentation_config import SegmentationConfig
from ..errors import InvalidConfiguration
from .models import Tile

logger = logging.getLogger(__name__)

ALIGNMENTS = ("top_left",)


class Tiler:
    """
    Partitions a region into padded tiles whose interiors cover it exactly.

    Interiors start at (0, 0) and advance by the interior size. The last
    row and column may be narrower than nominal; tiles are never cropped
    to a fixed size.

    Example:
        >>> tiler = Tiler(tile_width=512, tile_height=512, padding=16)
        >>> tiles = tiler.compute_tiles(1024, 1024)
        >>> len(tiles)
        9
    """

    def __init__(
        self,
        tile_width: int = 512,
        tile_height: int = 512,
        padding: int = 16,
        alignment: str = "top_left",
        min_interior: int = 1,
        config: Optional[SegmentationConfig] = None,
    ):
        """
        Initialize the tiler.

        Args:
            tile_width: Tile width including padding
            tile_height: Tile height including padding
            padding: Context on each side of the interior
            alignment: Grid alignment, only "top_left" is supported
            min_interior: Smallest allowed interior size (e.g. from the model input)
            config: Optional SegmentationConfig to use instead of individual params
        """
        if config is not None:
            tile_width = config.tile_width
            tile_height = config.tile_height
            padding = config.padding

        self.tile_width = tile_width
        self.tile_height = tile_height
        self.padding = padding
        self.alignment = alignment
        self.min_interior = max(1, min_interior)

        if alignment not in ALIGNMENTS:
            raise InvalidConfiguration(
                f"alignment must be one of {ALIGNMENTS}, got '{alignment}'"
            )
        if padding < 0:
            raise InvalidConfiguration(f"padding must be >= 0, got {padding}")
        if self.interior_width < self.min_interior or self.interior_height < self.min_interior:
            raise InvalidConfiguration(
                f"tile interior ({self.interior_width}x{self.interior_height}) must be at "
                f"least {self.min_interior} pixels; tile size "
                f"({tile_width}x{tile_height}) must exceed 2 x padding ({padding})"
            )

    @property
    def interior_width(self) -> int:
        return self.tile_width - 2 * self.padding

    @property
    def interior_height(self) -> int:
        return self.tile_height - 2 * self.padding

    @staticmethod
    def _axis_intervals(length: int, step: int) -> List[Tuple[int, int]]:
        """Split [0, length) into consecutive (start, size) intervals of at most ``step``."""
        return [(start, min(step, length - start)) for start in range(0, length, step)]

    def compute_tiles(self, region_width: int, region_height: int) -> List[Tile]:
        """
        Compute the tiles covering a region.

        Args:
            region_width: Region width at processing resolution
            region_height: Region height at processing resolution

        Returns:
            Tiles in row-major order
        """
        if region_width <= 0 or region_height <= 0:
            raise InvalidConfiguration(
                f"region size must be positive, got {region_width}x{region_height}"
            )

        columns = self._axis_intervals(region_width, self.interior_width)
        rows = self._axis_intervals(region_height, self.interior_height)

        tiles = []
        for row, (iy, ih) in enumerate(rows):
            for col, (ix, iw) in enumerate(columns):
                x1 = max(0, ix - self.padding)
                y1 = max(0, iy - self.padding)
                x2 = min(region_width, ix + iw + self.padding)
                y2 = min(region_height, iy + ih + self.padding)

                touches = (
                    ix == 0 or iy == 0
                    or ix + iw == region_width or iy + ih == region_height
                )
                tiles.append(Tile(
                    id=f"tile_{row}_{col}",
                    row=row,
                    col=col,
                    bounds=(x1, y1, x2 - x1, y2 - y1),
                    interior=(ix, iy, iw, ih),
                    padding=self.padding,
                    touches_boundary=touches,
                ))

        logger.debug(
            f"Computed {len(tiles)} tiles ({len(rows)} rows x {len(columns)} cols) "
            f"for {region_width}x{region_height} region"
        )
        return tiles

    def get_tile_count(self, region_width: int, region_height: int) -> int:
        """Number of tiles compute_tiles would return."""
        return (
            len(self._axis_intervals(region_width, self.interior_width))
            * len(self._axis_intervals(region_height, self.interior_height))
        )


def compute_tiles(
    region_width: int,
    region_height: int,
    tile_width: int,
    tile_height: int,
    padding: int,
    alignment: str = "top_left",
) -> List[Tile]:
    """Functional form of Tiler.compute_tiles."""
    tiler = Tiler(
        tile_width=tile_width,
        tile_height=tile_height,
        padding=padding,
        alignment=alignment,
    )
    return tiler.compute_tiles(region_width, region_height)


def downsample_for_pixel_size(image_pixel_size: float, target_pixel_size: float) -> float:
    """
    Downsample that brings an image to the pixel size a model expects.

    Args:
        image_pixel_size: Averaged pixel size of the image (e.g. microns)
        target_pixel_size: Pixel size the model was trained at

    Returns:
        target / image pixel size
    """
    if image_pixel_size is None or image_pixel_size <= 0:
        raise InvalidConfiguration(
            f"image pixel size must be > 0 to derive a downsample, got {image_pixel_size}"
        )
    return target_pixel_size / image_pixel_size
