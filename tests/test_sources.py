"""Tests for image sources and object sinks."""

import numpy as np
import pytest

from tiledseg.sources import ArraySource, CollectionSink, fit_to_shape, read_processing_rect
from tiledseg.tiling.models import ObjectInstance, Region


class TestArraySource:
    """Tests for ArraySource."""

    def test_dimensions(self):
        """Test size and channel count."""
        source = ArraySource(np.zeros((30, 40, 3), dtype=np.uint8), pixel_size=0.25)
        assert (source.width, source.height, source.n_channels) == (40, 30, 3)
        assert source.pixel_size == 0.25

    def test_grayscale(self):
        """Test 2D images get a channel axis."""
        source = ArraySource(np.zeros((30, 40), dtype=np.uint8))
        assert source.n_channels == 1
        assert source.read_region(0, 0, 10, 10).shape == (10, 10, 1)

    def test_read_full_resolution(self):
        """Test a read returns the requested rectangle."""
        image = np.arange(100, dtype=np.uint8).reshape(10, 10)
        region = ArraySource(image).read_region(2, 3, 4, 5)
        np.testing.assert_array_equal(region[:, :, 0], image[3:8, 2:6])

    def test_read_downsampled(self):
        """Test a downsampled read is scaled."""
        source = ArraySource(np.full((40, 40, 2), 9, dtype=np.uint8))
        pixels = source.read_region(0, 0, 40, 20, downsample=2.0)
        assert pixels.shape == (10, 20, 2)
        assert np.all(pixels == 9)

    def test_read_clipped(self):
        """Test reads beyond the image are clipped."""
        source = ArraySource(np.zeros((10, 10), dtype=np.uint8))
        assert source.read_region(8, 8, 5, 5).shape == (2, 2, 1)

    def test_bad_rank(self):
        """Test 4D arrays are rejected."""
        with pytest.raises(ValueError):
            ArraySource(np.zeros((2, 2, 2, 2)))


class TestReadHelpers:
    """Tests for processing-space reads."""

    def test_fit_to_shape(self):
        """Test crop and edge padding to an exact shape."""
        pixels = np.ones((5, 7, 1))
        assert fit_to_shape(pixels, 4, 4).shape == (4, 4, 1)
        padded = fit_to_shape(pixels, 6, 8)
        assert padded.shape == (6, 8, 1)
        assert np.all(padded == 1)

    def test_read_processing_rect(self):
        """Test a processing rectangle maps to the right image pixels."""
        image = np.zeros((100, 100), dtype=np.uint8)
        image[40:60, 40:60] = 255
        region = Region(20, 20, 80, 80, downsample=2.0)
        pixels = read_processing_rect(ArraySource(image), region, (10, 10, 10, 10))
        assert pixels.shape == (10, 10, 1)
        assert np.all(pixels == 255)


class TestCollectionSink:
    """Tests for CollectionSink."""

    def test_add_objects(self):
        """Test objects are collected in order."""
        sink = CollectionSink()
        instance = ObjectInstance.from_mask("a", 0, np.ones((2, 2), dtype=bool), (0, 0))
        sink.add_objects([instance])
        assert sink.objects == [instance]
