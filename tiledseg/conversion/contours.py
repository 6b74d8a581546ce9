"""
Contour extraction for instance masks.
"""

import cv2
import numpy as np
from typing import List, Tuple


def extract_contours(mask: np.ndarray) -> List[np.ndarray]:
    """
    Extract external contours from a binary mask.

    Args:
        mask: Binary mask (bool or uint8)

    Returns:
        List of contours (each is Nx1x2 numpy array), largest first
    """
    if mask.size == 0 or not np.any(mask):
        return []

    contours, _ = cv2.findContours(
        mask.astype(np.uint8),
        cv2.RETR_EXTERNAL,
        cv2.CHAIN_APPROX_SIMPLE,
    )
    return sorted(contours, key=cv2.contourArea, reverse=True)


def contour_to_polygon(
    contour: np.ndarray,
    epsilon: float = 0.0,
) -> List[Tuple[int, int]]:
    """
    Convert an OpenCV contour to a list of vertices.

    Args:
        contour: OpenCV contour (Nx1x2 array)
        epsilon: Douglas-Peucker tolerance in pixels (0 keeps every vertex)

    Returns:
        List of (x, y) tuples as Python integers
    """
    if epsilon > 0:
        contour = cv2.approxPolyDP(contour, epsilon, closed=True)
    return [(int(pt[0][0]), int(pt[0][1])) for pt in contour]


def mask_to_polygon(mask: np.ndarray, epsilon: float = 0.0) -> List[Tuple[int, int]]:
    """
    Outline of the largest connected part of a mask.

    Args:
        mask: Binary mask
        epsilon: Optional simplification tolerance in pixels

    Returns:
        Polygon vertices in mask-local pixel coordinates, empty for empty masks
    """
    contours = extract_contours(mask)
    if not contours:
        return []
    return contour_to_polygon(contours[0], epsilon)


def mask_perimeter(mask: np.ndarray) -> float:
    """Total length of the external contours of a mask, in pixels."""
    return float(sum(cv2.arcLength(c, closed=True) for c in extract_contours(mask)))
