"""
Coordinate transformation utilities for tile processing.
"""

from typing import List, Tuple

from .models import Region


def processing_to_full(
    point: Tuple[float, float],
    origin: Tuple[int, int],
    downsample: float,
) -> Tuple[float, float]:
    """
    Transform a point from region processing to full-resolution image coordinates.

    Args:
        point: (x, y) in region processing coordinates
        origin: (x, y) of the region in the full-resolution image
        downsample: Processing downsample of the region

    Returns:
        (x, y) in full-resolution image coordinates

    Example:
        >>> processing_to_full((10, 5), (1000, 2000), 2.0)
        (1020.0, 2010.0)
    """
    return (
        origin[0] + point[0] * downsample,
        origin[1] + point[1] * downsample,
    )


def transform_polygon(
    polygon: List[Tuple[float, float]],
    origin: Tuple[int, int],
    downsample: float,
) -> List[Tuple[float, float]]:
    """Transform all vertices of a polygon from processing to full-resolution coordinates."""
    return [processing_to_full(pt, origin, downsample) for pt in polygon]


def read_request(
    bounds: Tuple[int, int, int, int],
    region: Region,
) -> Tuple[int, int, int, int]:
    """
    Full-resolution rectangle to read for a processing-space rectangle.

    Args:
        bounds: (x, y, width, height) in region processing coordinates, e.g. tile.bounds
        region: Region the rectangle belongs to

    Returns:
        (x, y, width, height) in full-resolution coordinates, clipped to the region
    """
    bx, by, bw, bh = bounds
    ds = region.downsample
    x1 = region.x + int(round(bx * ds))
    y1 = region.y + int(round(by * ds))
    x2 = min(region.x + region.width, region.x + int(round((bx + bw) * ds)))
    y2 = min(region.y + region.height, region.y + int(round((by + bh) * ds)))
    return (x1, y1, max(1, x2 - x1), max(1, y2 - y1))
