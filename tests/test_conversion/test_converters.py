"""Tests for output converters."""

import numpy as np
import pytest

from tiledseg.conversion.converters import (
    LabelConverter,
    ThresholdConverter,
    get_converter,
    split_components,
)
from tiledseg.errors import InvalidConfiguration, ShapeMismatch
from tiledseg.tiling.models import Region
from tiledseg.tiling.tiler import compute_tiles


@pytest.fixture
def region():
    return Region(100, 200, 1024, 1024, downsample=2.0)


@pytest.fixture
def middle_tile():
    """Centre tile of a 1024 region, interior starting at (480, 480)."""
    return compute_tiles(1024, 1024, tile_width=512, tile_height=512, padding=16)[4]


class TestLabelConverter:
    """Tests for LabelConverter."""

    def test_instances_positioned_in_region(self, middle_tile, region):
        """Test instance offsets are relative to the region, not the tile."""
        output = np.zeros((1, 480, 480), dtype=np.float32)
        output[0, 10:20, 30:45] = 1
        output[0, 100:104, 200:202] = 2

        instances = LabelConverter().convert(output, middle_tile, region)

        assert [i.id for i in instances] == ["tile_1_1:0:1", "tile_1_1:0:2"]
        first = instances[0]
        assert first.offset == (510, 490)
        assert first.area == 150
        assert first.tile_ids == ["tile_1_1"]
        assert first.downsample == 2.0
        assert first.origin == (100, 200)

    def test_polygon_in_image_coordinates(self, middle_tile, region):
        """Test polygons are in full-resolution image coordinates."""
        output = np.zeros((480, 480), dtype=np.float32)
        output[0:2, 0:2] = 1
        instance = LabelConverter().convert(output, middle_tile, region)[0]
        xs = sorted({p[0] for p in instance.polygon})
        assert xs == [100 + 480 * 2.0, 100 + 481 * 2.0]

    def test_split_label(self, middle_tile, region):
        """Test a label in two disconnected pieces gives two instances."""
        output = np.zeros((1, 480, 480))
        output[0, 0:5, 0:5] = 3
        output[0, 50:55, 50:55] = 3
        instances = LabelConverter().convert(output, middle_tile, region)
        assert sorted(i.id for i in instances) == ["tile_1_1:0:3.0", "tile_1_1:0:3.1"]

    def test_small_fragments_kept(self, middle_tile, region):
        """Test small fragments are kept for the merge step."""
        output = np.zeros((1, 480, 480))
        output[0, 0:2, 0:2] = 1
        output[0, 10:20, 10:20] = 2
        instances = LabelConverter().convert(output, middle_tile, region)
        assert sorted(i.area for i in instances) == [4, 100]

    def test_output_channels(self, middle_tile, region):
        """Test only the requested output channels are converted."""
        output = np.zeros((2, 480, 480))
        output[0, 0:4, 0:4] = 1
        output[1, 8:12, 8:12] = 1
        instances = LabelConverter().convert(output, middle_tile, region, output_channels=[1])
        assert [i.output_channel for i in instances] == [1]

    def test_missing_channel(self, middle_tile, region):
        """Test requesting a channel the model did not produce raises error."""
        with pytest.raises(ShapeMismatch) as exc_info:
            LabelConverter().convert(np.zeros((1, 480, 480)), middle_tile, region, [1])
        assert exc_info.value.tile_id == "tile_1_1"
        assert exc_info.value.bounds == middle_tile.bounds

    def test_wrong_shape(self, middle_tile, region):
        """Test output not matching the interior raises error."""
        with pytest.raises(ShapeMismatch) as exc_info:
            LabelConverter().convert(np.zeros((1, 100, 100)), middle_tile, region)
        assert exc_info.value.tile_id == "tile_1_1"

    def test_empty_output(self, middle_tile, region):
        """Test an all-background output gives no instances."""
        assert LabelConverter().convert(np.zeros((1, 480, 480)), middle_tile, region) == []


class TestThresholdConverter:
    """Tests for ThresholdConverter."""

    def test_components(self, middle_tile, region):
        """Test each connected region above threshold is one instance."""
        output = np.zeros((1, 480, 480), dtype=np.float32)
        output[0, 0:10, 0:10] = 0.9
        output[0, 50:60, 50:60] = 0.7
        output[0, 100:110, 100:110] = 0.3

        instances = ThresholdConverter(threshold=0.5).convert(output, middle_tile, region)

        assert len(instances) == 2
        assert all(i.area == 100 for i in instances)


class TestHelpers:
    """Tests for converter helpers."""

    def test_get_converter(self):
        """Test converters are created by name."""
        assert isinstance(get_converter("labels"), LabelConverter)
        converter = get_converter("threshold", probability_threshold=0.8)
        assert converter.threshold == 0.8

    def test_unknown_converter(self):
        """Test an unknown name raises error."""
        with pytest.raises(InvalidConfiguration):
            get_converter("watershed")

    def test_split_components(self):
        """Test pieces come with their offsets."""
        mask = np.zeros((10, 10), dtype=bool)
        mask[1:3, 2:5] = True
        mask[7:9, 6:8] = True
        pieces = split_components(mask)
        assert len(pieces) == 2
        assert sorted(offset for _, offset in pieces) == [(2, 1), (6, 7)]
        assert sorted(int(m.sum()) for m, _ in pieces) == [4, 6]
