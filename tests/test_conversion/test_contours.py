"""Tests for contour extraction."""

import numpy as np

from tiledseg.conversion.contours import (
    contour_to_polygon,
    extract_contours,
    mask_perimeter,
    mask_to_polygon,
)


class TestContours:
    """Tests for contour helpers."""

    def test_empty_mask(self):
        """Test an empty mask has no contours."""
        assert extract_contours(np.zeros((5, 5), dtype=bool)) == []
        assert mask_to_polygon(np.zeros((5, 5), dtype=bool)) == []

    def test_largest_first(self):
        """Test contours are sorted by area."""
        mask = np.zeros((20, 20), dtype=np.uint8)
        mask[1:3, 1:3] = 1
        mask[5:15, 5:15] = 1
        contours = extract_contours(mask)
        assert len(contours) == 2
        xs = [p[0][0] for p in contours[0]]
        assert min(xs) == 5

    def test_rectangle_polygon(self):
        """Test a filled rectangle gives its four corners."""
        mask = np.zeros((10, 10), dtype=bool)
        mask[2:6, 3:8] = True
        polygon = mask_to_polygon(mask)
        assert sorted(polygon) == [(3, 2), (3, 5), (7, 2), (7, 5)]

    def test_simplification(self):
        """Test a positive epsilon never adds vertices."""
        mask = np.zeros((40, 40), dtype=np.uint8)
        yy, xx = np.mgrid[:40, :40]
        mask[(yy - 20) ** 2 + (xx - 20) ** 2 < 150] = 1
        contour = extract_contours(mask)[0]
        assert len(contour_to_polygon(contour, epsilon=2.0)) <= len(contour_to_polygon(contour))

    def test_perimeter(self):
        """Test the perimeter of a square outline."""
        mask = np.zeros((10, 10), dtype=bool)
        mask[2:6, 2:6] = True
        assert mask_perimeter(mask) == 12.0
