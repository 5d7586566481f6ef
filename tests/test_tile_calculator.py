#!/usr/bin/env python3
"""
Tests for TileCalculator utility
"""

import pytest

from atlas_otm.models.geo import BoundingBox
from atlas_otm.utils.tile_calculator import TileCalculator
from atlas_otm.exceptions.tile_cache_exceptions import ValidationError


class TestZoomLevels:
    """Tier name to zoom level mapping"""

    @pytest.mark.parametrize("tier,zoom", [("country", 8), ("region", 10), ("station", 12)])
    def test_known_tiers(self, tier, zoom):
        assert TileCalculator.zoom_level_for(tier) == zoom

    @pytest.mark.parametrize("tier", ["planet", "", "Region", "street", "10"])
    def test_unknown_tiers_map_to_zero(self, tier):
        assert TileCalculator.zoom_level_for(tier) == 0

    def test_require_zoom_level_rejects_unknown(self):
        with pytest.raises(ValidationError, match="planet"):
            TileCalculator.require_zoom_level("planet")


class TestTileCoordinate:
    """Test cases for the Web-Mercator conversion"""

    def test_known_coordinates(self):
        # New York at zoom 10
        x, y = TileCalculator.tile_coordinate(40.7128, -74.0060, 10)
        assert x == 301
        assert 380 <= y <= 390

    def test_origin(self):
        assert TileCalculator.tile_coordinate(0, 0, 0) == (0, 0)
        assert TileCalculator.tile_coordinate(0, 0, 1) == (1, 1)

    @pytest.mark.parametrize("lat", [-89.999, -85.06, -45.5, 0.0, 33.3, 85.06, 89.999])
    @pytest.mark.parametrize("lon", [-180.0, -179.9, -0.1, 0.0, 120.5, 180.0])
    @pytest.mark.parametrize("zoom", [8, 10, 12])
    def test_result_stays_inside_grid(self, lat, lon, zoom):
        x, y = TileCalculator.tile_coordinate(lat, lon, zoom)
        assert isinstance(x, int) and isinstance(y, int)
        assert 0 <= x < 2 ** zoom
        assert 0 <= y < 2 ** zoom

    def test_nearby_points_share_a_tile(self):
        a = TileCalculator.tile_coordinate(54.0, -2.0, 8)
        b = TileCalculator.tile_coordinate(54.0001, -2.0001, 8)
        assert a == b

    def test_inverse_returns_top_left_corner(self):
        x, y = TileCalculator.tile_coordinate(54.0, -2.0, 12)
        lat, lon = TileCalculator.lat_lon_from_tile(x, y, 12)
        assert lat >= 54.0 and lon <= -2.0
        assert TileCalculator.tile_coordinate(lat - 1e-9, lon + 1e-9, 12) == (x, y)

    def test_tile_bounds(self):
        min_lon, min_lat, max_lon, max_lat = TileCalculator.tile_bounds(1, 0, 0)
        assert min_lon == -180.0 and max_lon == 0.0
        assert min_lat == pytest.approx(0.0, abs=1e-9)
        assert max_lat == pytest.approx(85.0511, abs=1e-4)


class TestTileRanges:
    """Bounding box enumeration"""

    def test_small_bbox_at_region(self, small_bbox):
        tile_range = TileCalculator.tile_range_for_bbox(small_bbox, "region")
        assert (tile_range.x_start, tile_range.x_end) == (506, 506)
        assert (tile_range.y_start, tile_range.y_end) == (328, 329)
        assert tile_range.count == 2
        assert list(tile_range.tiles()) == [(506, 328), (506, 329)]

    def test_count_sums_over_tiers(self, small_bbox):
        per_tier = [TileCalculator.tile_range_for_bbox(small_bbox, t).count
                    for t in ("country", "region", "station")]
        assert TileCalculator.count_tiles(small_bbox, ["country", "region", "station"]) == sum(per_tier)

    def test_tiles_are_ordered_by_x_then_y(self, wide_bbox):
        tiles = list(TileCalculator.tile_range_for_bbox(wide_bbox, "station").tiles())
        assert tiles == sorted(tiles)
        assert len({x for x, _ in tiles}) > 1

    def test_reversed_bbox_is_refused(self):
        reversed_bbox = BoundingBox.from_corners(53.9, -2.1, 54.1, -1.9)
        with pytest.raises(ValidationError, match="Empty tile range"):
            TileCalculator.tile_ranges_for_bbox(reversed_bbox, ["region"])

    def test_unknown_tier_is_refused_before_any_range(self, small_bbox):
        with pytest.raises(ValidationError):
            TileCalculator.tile_ranges_for_bbox(small_bbox, ["region", "planet"])

    def test_no_tiers(self, small_bbox):
        with pytest.raises(ValidationError):
            TileCalculator.tile_ranges_for_bbox(small_bbox, [])

    @pytest.mark.parametrize("corners", [
        (90.0, -2.1, 53.9, -1.9),
        (54.1, -2.1, -90.0, -1.9),
        (91.0, -2.1, 53.9, -1.9),
        (54.1, -181.0, 53.9, -1.9),
        (54.1, -2.1, 53.9, 180.5),
        (float("nan"), -2.1, 53.9, -1.9),
    ])
    def test_out_of_range_coordinates(self, corners):
        with pytest.raises(ValidationError):
            TileCalculator.tile_range_for_bbox(BoundingBox.from_corners(*corners), "region")
