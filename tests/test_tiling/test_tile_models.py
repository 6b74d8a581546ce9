"""Tests for tiling data models."""

import numpy as np

from tiledseg.tiling.models import ObjectInstance, Region, Tile, TileResult


class TestRegion:
    """Tests for Region dataclass."""

    def test_processing_size(self):
        """Test processing size rounds up."""
        region = Region(0, 0, 1001, 500, downsample=2.0)
        assert region.processing_width == 501
        assert region.processing_height == 250

    def test_to_dict(self):
        """Test conversion to dictionary."""
        region = Region(1, 2, 3, 4, 0.5)
        assert region.to_dict() == {
            "x": 1, "y": 2, "width": 3, "height": 4, "downsample": 0.5,
        }


class TestTile:
    """Tests for Tile dataclass."""

    def test_properties(self):
        """Test position and size properties."""
        tile = Tile("tile_0_1", 0, 1, (464, 0, 512, 496), (480, 0, 480, 480), 16)
        assert (tile.x, tile.y, tile.width, tile.height) == (464, 0, 512, 496)
        assert tile.pad == (16, 0, 16, 16)

    def test_to_dict(self):
        """Test conversion to dictionary."""
        tile = Tile("tile_0_0", 0, 0, (0, 0, 10, 10), (0, 0, 10, 10), 0, True)
        data = tile.to_dict()
        assert data["id"] == "tile_0_0"
        assert data["bounds"] == [0, 0, 10, 10]
        assert data["touches_boundary"] is True


class TestObjectInstance:
    """Tests for ObjectInstance dataclass."""

    def test_polygon_in_full_resolution(self):
        """Test the outline is scaled and offset into image coordinates."""
        mask = np.ones((3, 2), dtype=bool)
        instance = ObjectInstance.from_mask(
            "a", 0, mask, offset=(10, 20), downsample=2.0, origin=(100, 200)
        )
        xs = [p[0] for p in instance.polygon]
        ys = [p[1] for p in instance.polygon]
        assert min(xs) == 120.0 and max(xs) == 122.0
        assert min(ys) == 240.0 and max(ys) == 244.0

    def test_bbox_and_area(self):
        """Test bbox is exclusive and area counts set pixels."""
        mask = np.array([[1, 0], [1, 1]], dtype=bool)
        instance = ObjectInstance.from_mask("a", 0, mask, offset=(5, 6))
        assert instance.bbox == (5, 6, 7, 8)
        assert instance.area == 3

    def test_to_dict(self):
        """Test conversion to dictionary without mask data."""
        instance = ObjectInstance.from_mask(
            "a", 1, np.ones((2, 2), dtype=bool), offset=(0, 0), tile_ids=["tile_0_0"]
        )
        data = instance.to_dict()
        assert data["output_channel"] == 1
        assert data["tile_ids"] == ["tile_0_0"]
        assert "mask" not in data

    def test_tile_result_to_dict(self):
        """Test TileResult serializes its tile and instances."""
        tile = Tile("tile_0_0", 0, 0, (0, 0, 4, 4), (0, 0, 4, 4), 0)
        instance = ObjectInstance.from_mask("a", 0, np.ones((2, 2), dtype=bool), (1, 1))
        data = TileResult(tile, [instance]).to_dict()
        assert data["tile"]["id"] == "tile_0_0"
        assert len(data["instances"]) == 1
