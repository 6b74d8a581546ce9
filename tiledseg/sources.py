"""
Boundaries to the host application: where pixels come from and where
finished objects go.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .tiling.models import ObjectInstance, Region
from .tiling.transforms import read_request


class ImageSource(ABC):
    """A (possibly very large) multi-channel image that can be read by region."""

    @property
    @abstractmethod
    def width(self) -> int:
        """Full-resolution width."""

    @property
    @abstractmethod
    def height(self) -> int:
        """Full-resolution height."""

    @property
    @abstractmethod
    def n_channels(self) -> int:
        """Number of channels."""

    @property
    def pixel_size(self) -> Optional[float]:
        """Averaged pixel size in microns, or None if the image is uncalibrated."""
        return None

    @abstractmethod
    def read_region(
        self,
        x: int,
        y: int,
        width: int,
        height: int,
        downsample: float = 1.0,
    ) -> np.ndarray:
        """
        Read a full-resolution rectangle at a downsample.

        Returns:
            (H, W, C) array of roughly (height / downsample, width / downsample)
        """


class ArraySource(ImageSource):
    """
    Image source backed by an in-memory numpy array.

    Args:
        array: (H, W) or (H, W, C) image
        pixel_size: Pixel size in microns, if known
    """

    def __init__(self, array: np.ndarray, pixel_size: Optional[float] = None):
        if array.ndim == 2:
            array = array[:, :, np.newaxis]
        if array.ndim != 3:
            raise ValueError(f"Expected a 2D or 3D image, got shape {array.shape}")
        self.array = array
        self._pixel_size = pixel_size

    @property
    def width(self) -> int:
        return self.array.shape[1]

    @property
    def height(self) -> int:
        return self.array.shape[0]

    @property
    def n_channels(self) -> int:
        return self.array.shape[2]

    @property
    def pixel_size(self) -> Optional[float]:
        return self._pixel_size

    def read_region(
        self,
        x: int,
        y: int,
        width: int,
        height: int,
        downsample: float = 1.0,
    ) -> np.ndarray:
        x1, y1 = max(0, x), max(0, y)
        x2, y2 = min(self.width, x + width), min(self.height, y + height)
        data = self.array[y1:y2, x1:x2]

        if downsample == 1.0 or data.size == 0:
            return data.copy()

        out_w = max(1, int(round(data.shape[1] / downsample)))
        out_h = max(1, int(round(data.shape[0] / downsample)))
        interpolation = cv2.INTER_AREA if downsample > 1.0 else cv2.INTER_LINEAR

        resized = np.stack(
            [cv2.resize(data[:, :, c], (out_w, out_h), interpolation=interpolation)
             for c in range(data.shape[2])],
            axis=2,
        )
        return resized


def fit_to_shape(pixels: np.ndarray, height: int, width: int) -> np.ndarray:
    """
    Crop or edge-pad (H, W, C) pixels to an exact spatial shape.

    Rounding in downsampled reads can be off by a pixel; this absorbs it.
    """
    if pixels.ndim == 2:
        pixels = pixels[:, :, np.newaxis]
    pixels = pixels[:height, :width]
    pad_h, pad_w = height - pixels.shape[0], width - pixels.shape[1]
    if pad_h > 0 or pad_w > 0:
        pixels = np.pad(pixels, [(0, pad_h), (0, pad_w), (0, 0)], mode="edge")
    return pixels


def read_processing_rect(
    source: ImageSource,
    region: Region,
    bounds: Tuple[int, int, int, int],
) -> np.ndarray:
    """
    Read a rectangle given in region processing coordinates.

    Returns:
        (bounds height, bounds width, C) array
    """
    x, y, w, h = read_request(bounds, region)
    pixels = source.read_region(x, y, w, h, region.downsample)
    return fit_to_shape(pixels, bounds[3], bounds[2])


class ObjectSink(ABC):
    """Receives the final objects of a successful run."""

    @abstractmethod
    def add_objects(self, instances: Sequence[ObjectInstance]) -> None:
        """Add objects to the host collection."""


class CollectionSink(ObjectSink):
    """Sink collecting objects in a list."""

    def __init__(self):
        self.objects: List[ObjectInstance] = []

    def add_objects(self, instances: Sequence[ObjectInstance]) -> None:
        self.objects.extend(instances)
