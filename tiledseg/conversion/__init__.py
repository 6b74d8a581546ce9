"""
Conversion of model outputs into object instances.
"""

from .contours import contour_to_polygon, extract_contours, mask_perimeter, mask_to_polygon
from .converters import (
    LabelConverter,
    OutputConverter,
    ThresholdConverter,
    get_converter,
    split_components,
)

__all__ = [
    # Contours
    "contour_to_polygon",
    "extract_contours",
    "mask_perimeter",
    "mask_to_polygon",
    # Converters
    "LabelConverter",
    "OutputConverter",
    "ThresholdConverter",
    "get_converter",
    "split_components",
]
