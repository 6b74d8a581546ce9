"""
Merging of instances split across tile seams.

Two instances from adjacent tiles are fused when they touch the shared
interior edge along a common stretch whose length, divided by the smaller
of the two boundary extents, reaches the merge threshold. Fusion is
transitive (union-find), so an object cut by several seams ends up whole.

The result does not depend on the order of the tile results.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List

import numpy as np

from ..errors import MergeInconsistency
from .models import ObjectInstance, TileResult
from .overlap import SharedEdge, boundary_overlap, find_shared_edges, touches_edge

logger = logging.getLogger(__name__)


@dataclass
class MergeCandidate:
    """A pair of instances that share enough of a tile boundary to be fused."""
    instance1_id: str
    instance2_id: str
    overlap: int
    ratio: float
    edge: SharedEdge


def _instances_by_tile(tile_results: List[TileResult]) -> Dict[str, List[ObjectInstance]]:
    by_tile: Dict[str, List[ObjectInstance]] = {}
    for result in tile_results:
        by_tile.setdefault(result.tile.id, []).extend(result.instances)
    for instances in by_tile.values():
        instances.sort(key=lambda i: i.id)
    return by_tile


def find_merge_candidates(
    tile_results: List[TileResult],
    threshold: float = 0.25,
) -> List[MergeCandidate]:
    """
    Find instance pairs across tile seams that should be fused.

    Args:
        tile_results: Per-tile instances in region processing coordinates
        threshold: Minimum overlap ratio (0-1); a zero overlap never fuses

    Returns:
        Candidates sorted by instance IDs
    """
    by_tile = _instances_by_tile(tile_results)
    edges = find_shared_edges([r.tile for r in tile_results])

    candidates = []
    for edge in edges:
        before = [i for i in by_tile.get(edge.before_id, []) if touches_edge(i, edge, True)]
        after = [i for i in by_tile.get(edge.after_id, []) if touches_edge(i, edge, False)]

        for a in before:
            for b in after:
                # Only fuse instances from the same output channel
                if a.output_channel != b.output_channel:
                    continue

                overlap, ratio = boundary_overlap(a, b, edge)
                if overlap > 0 and ratio >= threshold:
                    candidates.append(MergeCandidate(
                        instance1_id=a.id,
                        instance2_id=b.id,
                        overlap=overlap,
                        ratio=ratio,
                        edge=edge,
                    ))

    candidates.sort(key=lambda c: (c.instance1_id, c.instance2_id))
    return candidates


def fuse_instances(instances: List[ObjectInstance]) -> ObjectInstance:
    """
    Fuse instances into one with the union of their masks.

    Args:
        instances: Instances to fuse, all from the same run and output channel

    Returns:
        Fused instance, identified by the smallest member ID

    Raises:
        MergeInconsistency: If the members cannot be placed on a common grid
    """
    if not instances:
        raise MergeInconsistency("Cannot fuse an empty group of instances")

    members = sorted(instances, key=lambda i: i.id)
    first = members[0]

    for other in members[1:]:
        if other.downsample != first.downsample or tuple(other.origin) != tuple(first.origin):
            raise MergeInconsistency(
                f"Instances {first.id} and {other.id} come from different regions"
            )
        if other.output_channel != first.output_channel:
            raise MergeInconsistency(
                f"Instances {first.id} and {other.id} have different output channels"
            )
    for member in members:
        if member.mask.ndim != 2 or not np.any(member.mask):
            raise MergeInconsistency(f"Instance {member.id} has an empty or malformed mask")

    x1 = min(m.bbox[0] for m in members)
    y1 = min(m.bbox[1] for m in members)
    x2 = max(m.bbox[2] for m in members)
    y2 = max(m.bbox[3] for m in members)

    canvas = np.zeros((y2 - y1, x2 - x1), dtype=bool)
    for m in members:
        mx1, my1, mx2, my2 = m.bbox
        canvas[my1 - y1:my2 - y1, mx1 - x1:mx2 - x1] |= m.mask

    tile_ids = sorted({tid for m in members for tid in m.tile_ids})

    return ObjectInstance.from_mask(
        id=first.id,
        output_channel=first.output_channel,
        mask=canvas,
        offset=(x1, y1),
        downsample=first.downsample,
        origin=first.origin,
        tile_ids=tile_ids,
    )


def merge_instances(
    tile_results: List[TileResult],
    threshold: float = 0.25,
) -> List[ObjectInstance]:
    """
    Merge per-tile instances into the final object set.

    Args:
        tile_results: Per-tile instances, in any order
        threshold: Minimum normalized shared-boundary overlap to fuse

    Returns:
        Final instances sorted by (output channel, top, left, id)
    """
    if not tile_results:
        return []

    all_instances = sorted(
        (i for r in tile_results for i in r.instances),
        key=lambda i: i.id,
    )
    index = {inst.id: n for n, inst in enumerate(all_instances)}

    candidates = find_merge_candidates(tile_results, threshold)

    # Union-Find for grouping instances
    parent = list(range(len(all_instances)))

    def find(x):
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    def union(x, y):
        px, py = find(x), find(y)
        if px != py:
            parent[max(px, py)] = min(px, py)

    for candidate in candidates:
        union(index[candidate.instance1_id], index[candidate.instance2_id])

    groups: Dict[int, List[int]] = {}
    for i in range(len(all_instances)):
        groups.setdefault(find(i), []).append(i)

    merged = []
    fused_count = 0
    for members in groups.values():
        group = [all_instances[i] for i in members]
        if len(group) == 1:
            merged.append(group[0])
            continue

        try:
            merged.append(fuse_instances(group))
            fused_count += 1
        except MergeInconsistency as e:
            logger.warning(f"Keeping {len(group)} instances unmerged: {e}")
            merged.extend(group)

    logger.info(
        f"Merged {len(all_instances)} tile instances into {len(merged)} objects "
        f"({len(candidates)} seam matches, {fused_count} fused groups)"
    )

    merged.sort(key=lambda i: (i.output_channel, i.bbox[1], i.bbox[0], i.id))
    return merged
