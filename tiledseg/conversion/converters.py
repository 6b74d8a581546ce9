"""
Conversion of raw tile outputs into object instances.

Each strategy receives the model output for one tile, already cropped to
the tile interior and laid out as (channels, height, width), and returns
instances positioned in region processing coordinates. Fragments are kept
whatever their size; area filtering happens on merged objects.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import cv2
import numpy as np
from scipy import ndimage

from ..errors import InvalidConfiguration, ShapeMismatch
from ..tiling.models import ObjectInstance, Region, Tile

logger = logging.getLogger(__name__)


class OutputConverter(ABC):
    """Strategy turning a tile output into instances."""

    @abstractmethod
    def _label_channel(self, channel: np.ndarray) -> np.ndarray:
        """Return a non-negative integer label image for one output channel."""

    def convert(
        self,
        output: np.ndarray,
        tile: Tile,
        region: Region,
        output_channels: Optional[Sequence[int]] = None,
    ) -> List[ObjectInstance]:
        """
        Convert one tile's output into instances.

        Args:
            output: Array (C, H, W) matching the tile interior
            tile: The tile the output belongs to
            region: Region being processed
            output_channels: Channels to convert (None = all)

        Returns:
            Instances with masks in region processing coordinates

        Raises:
            ShapeMismatch: If the output does not cover the tile interior or
                lacks a requested channel
        """
        if output.ndim == 2:
            output = output[np.newaxis]

        _, _, iw, ih = tile.interior
        if output.shape[1:] != (ih, iw):
            raise ShapeMismatch(
                f"Output shape {output.shape[1:]} does not match interior {(ih, iw)}",
                tile.id,
                tile.bounds,
            )

        channels = range(output.shape[0]) if output_channels is None else output_channels
        instances = []
        for c in channels:
            if c >= output.shape[0]:
                raise ShapeMismatch(
                    f"Output channel {c} requested but model produced {output.shape[0]}",
                    tile.id,
                    tile.bounds,
                )
            labels = self._label_channel(output[c])
            instances.extend(self._instances_from_labels(labels, c, tile, region))

        logger.debug(f"{tile.id}: {len(instances)} instances")
        return instances

    def _instances_from_labels(
        self,
        labels: np.ndarray,
        channel: int,
        tile: Tile,
        region: Region,
    ) -> List[ObjectInstance]:
        ix, iy, _, _ = tile.interior
        instances = []

        for index, slices in enumerate(ndimage.find_objects(labels)):
            if slices is None:
                continue
            label = index + 1
            ys, xs = slices
            label_mask = labels[slices] == label

            # A label may be split into several pieces inside one tile
            pieces = split_components(label_mask)
            for n, piece in enumerate(pieces):
                local_mask, (px, py) = piece
                suffix = f"{label}" if len(pieces) == 1 else f"{label}.{n}"
                instances.append(ObjectInstance.from_mask(
                    id=f"{tile.id}:{channel}:{suffix}",
                    output_channel=channel,
                    mask=local_mask,
                    offset=(ix + xs.start + px, iy + ys.start + py),
                    downsample=region.downsample,
                    origin=(region.x, region.y),
                    tile_ids=[tile.id],
                ))

        return instances


def split_components(mask: np.ndarray, connectivity: int = 8):
    """
    Split a binary mask into connected components.

    Args:
        mask: Binary mask
        connectivity: 4 or 8

    Returns:
        List of (cropped component mask, (x, y) offset within ``mask``)
    """
    count, components, stats, _ = cv2.connectedComponentsWithStats(
        mask.astype(np.uint8), connectivity=connectivity
    )
    pieces = []
    for k in range(1, count):
        x = stats[k, cv2.CC_STAT_LEFT]
        y = stats[k, cv2.CC_STAT_TOP]
        w = stats[k, cv2.CC_STAT_WIDTH]
        h = stats[k, cv2.CC_STAT_HEIGHT]
        pieces.append((components[y:y + h, x:x + w] == k, (int(x), int(y))))
    return pieces


class LabelConverter(OutputConverter):
    """Each non-zero label value of a label image is one object."""

    def _label_channel(self, channel: np.ndarray) -> np.ndarray:
        labels = np.rint(channel).astype(np.int64)
        labels[labels < 0] = 0
        return labels


class ThresholdConverter(OutputConverter):
    """Connected components of a probability map above a threshold are objects."""

    def __init__(self, threshold: float = 0.5):
        self.threshold = threshold

    def _label_channel(self, channel: np.ndarray) -> np.ndarray:
        foreground = (channel > self.threshold).astype(np.uint8)
        _, labels = cv2.connectedComponents(foreground, connectivity=8)
        return labels.astype(np.int64)


def get_converter(
    name: str,
    probability_threshold: float = 0.5,
) -> OutputConverter:
    """
    Create an output converter by name.

    Args:
        name: "labels" or "threshold"
        probability_threshold: Foreground threshold for "threshold"

    Returns:
        OutputConverter instance
    """
    if name == "labels":
        return LabelConverter()
    if name == "threshold":
        return ThresholdConverter(threshold=probability_threshold)
    raise InvalidConfiguration(f"Unknown converter '{name}'")
