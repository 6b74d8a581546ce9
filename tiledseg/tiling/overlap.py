"""
Shared-boundary overlap between instances from adjacent tiles.

Tile interiors partition the region, so an object cut by a seam appears as
one instance on each side, both touching the shared edge. The overlap of
two such instances is the number of positions along the edge where both
touch it, normalized by the smaller of the two boundary extents.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from .models import ObjectInstance, Tile

VERTICAL = "vertical"
HORIZONTAL = "horizontal"


@dataclass(frozen=True)
class SharedEdge:
    """
    Edge shared by the interiors of two adjacent tiles.

    Attributes:
        before_id: Tile left of (vertical) or above (horizontal) the edge
        after_id: Tile right of or below the edge
        orientation: "vertical" or "horizontal"
        position: x (vertical) or y (horizontal) of the first pixel after the edge
        span: (start, end) range along the edge, in region processing coordinates
    """
    before_id: str
    after_id: str
    orientation: str
    position: int
    span: Tuple[int, int]


def find_shared_edges(tiles: List[Tile]) -> List[SharedEdge]:
    """
    Find the interior edges shared by horizontally or vertically adjacent tiles.

    Args:
        tiles: Tiles from Tiler.compute_tiles

    Returns:
        Shared edges, sorted by (orientation, position, span)
    """
    by_index: Dict[Tuple[int, int], Tile] = {(t.row, t.col): t for t in tiles}
    edges = []

    for (row, col), tile in by_index.items():
        ix, iy, iw, ih = tile.interior

        right = by_index.get((row, col + 1))
        if right is not None:
            edges.append(SharedEdge(
                before_id=tile.id,
                after_id=right.id,
                orientation=VERTICAL,
                position=ix + iw,
                span=(iy, iy + ih),
            ))

        below = by_index.get((row + 1, col))
        if below is not None:
            edges.append(SharedEdge(
                before_id=tile.id,
                after_id=below.id,
                orientation=HORIZONTAL,
                position=iy + ih,
                span=(ix, ix + iw),
            ))

    edges.sort(key=lambda e: (e.orientation, e.position, e.span))
    return edges


def boundary_extent(
    instance: ObjectInstance,
    edge: SharedEdge,
    before: bool,
) -> np.ndarray:
    """
    Positions along an edge where an instance touches it.

    Args:
        instance: Instance in region processing coordinates
        edge: The shared edge
        before: True if the instance lies before the edge (left or above)

    Returns:
        Sorted array of positions (y for vertical edges, x for horizontal)
    """
    ox, oy = instance.offset
    h, w = instance.mask.shape
    line = edge.position - 1 if before else edge.position

    if edge.orientation == VERTICAL:
        index = line - ox
        if not (0 <= index < w):
            return np.empty(0, dtype=np.int64)
        positions = np.flatnonzero(instance.mask[:, index]) + oy
    else:
        index = line - oy
        if not (0 <= index < h):
            return np.empty(0, dtype=np.int64)
        positions = np.flatnonzero(instance.mask[index, :]) + ox

    start, end = edge.span
    return positions[(positions >= start) & (positions < end)]


def touches_edge(instance: ObjectInstance, edge: SharedEdge, before: bool) -> bool:
    """Fast bounding box check for whether an instance can touch an edge."""
    x1, y1, x2, y2 = instance.bbox
    line = edge.position - 1 if before else edge.position
    start, end = edge.span

    if edge.orientation == VERTICAL:
        return x1 <= line < x2 and y1 < end and y2 > start
    return y1 <= line < y2 and x1 < end and x2 > start


def boundary_overlap(
    before: ObjectInstance,
    after: ObjectInstance,
    edge: SharedEdge,
) -> Tuple[int, float]:
    """
    Overlap of two instances along a shared edge.

    Args:
        before: Instance from the tile before the edge
        after: Instance from the tile after the edge
        edge: The shared edge

    Returns:
        (overlap length in pixels, overlap / smaller boundary extent)

    Example:
        An instance touching 10 rows of a seam next to one touching 4 of the
        same rows has overlap 4 and ratio 1.0.
    """
    extent_before = boundary_extent(before, edge, before=True)
    extent_after = boundary_extent(after, edge, before=False)

    smaller = min(len(extent_before), len(extent_after))
    if smaller == 0:
        return 0, 0.0

    overlap = len(np.intersect1d(extent_before, extent_after, assume_unique=True))
    return overlap, overlap / smaller
