"""
Measurements attached to merged objects.

Runs after the merge, outside the inference core. Shape measurements are in
full-resolution pixel units; intensity measurements are read back from the
image at the processing downsample.
"""

import logging
from typing import List, Optional

import numpy as np

from .conversion.contours import mask_perimeter
from .sources import ImageSource, read_processing_rect
from .tiling.models import ObjectInstance, Region

logger = logging.getLogger(__name__)


def measure_shape(instance: ObjectInstance) -> None:
    """Add area, perimeter and centroid to an instance's measurements."""
    ds = instance.downsample
    ys, xs = np.nonzero(instance.mask)

    instance.measurements["area"] = float(len(xs)) * ds * ds
    instance.measurements["perimeter"] = mask_perimeter(instance.mask) * ds
    if len(xs):
        instance.measurements["centroid_x"] = float(
            instance.origin[0] + (instance.offset[0] + xs.mean() + 0.5) * ds
        )
        instance.measurements["centroid_y"] = float(
            instance.origin[1] + (instance.offset[1] + ys.mean() + 0.5) * ds
        )


def measure_intensity(
    instance: ObjectInstance,
    source: ImageSource,
    region: Region,
    channel_names: Optional[List[str]] = None,
) -> None:
    """Add per-channel mean and standard deviation inside the instance mask."""
    x1, y1, x2, y2 = instance.bbox
    pixels = read_processing_rect(source, region, (x1, y1, x2 - x1, y2 - y1))
    values = pixels[instance.mask]

    if values.size == 0:
        return

    for c in range(values.shape[1]):
        name = channel_names[c] if channel_names and c < len(channel_names) else f"channel_{c}"
        instance.measurements[f"{name}: mean"] = float(values[:, c].mean())
        instance.measurements[f"{name}: std"] = float(values[:, c].std())


def make_measurements(
    instances: List[ObjectInstance],
    source: Optional[ImageSource] = None,
    region: Optional[Region] = None,
    channel_names: Optional[List[str]] = None,
) -> List[ObjectInstance]:
    """
    Measure all instances in place.

    Args:
        instances: Final merged instances
        source: Image to read intensities from (None skips intensities)
        region: Region the instances were segmented in
        channel_names: Optional names for the image channels

    Returns:
        The same instances
    """
    for instance in instances:
        measure_shape(instance)
        if source is not None and region is not None:
            measure_intensity(instance, source, region, channel_names)

    logger.debug(f"Measured {len(instances)} objects")
    return instances
