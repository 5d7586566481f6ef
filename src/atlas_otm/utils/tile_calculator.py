import math
from typing import Iterable, List, Tuple

from atlas_otm.exceptions.tile_cache_exceptions import ValidationError
from atlas_otm.models.geo import BoundingBox, TileRange
from atlas_otm.models.zoom_tier import INVALID_ZOOM_LEVEL, ZoomTier


class TileCalculator:
    """Utility class for tile coordinate calculations"""

    @staticmethod
    def zoom_level_for(tier_name: str) -> int:
        """Map a tier name to its zoom level, 0 when the name is unknown"""
        try:
            return ZoomTier(tier_name).zoom_level
        except ValueError:
            return INVALID_ZOOM_LEVEL

    @staticmethod
    def require_zoom_level(tier_name: str) -> int:
        zoom = TileCalculator.zoom_level_for(tier_name)
        if zoom == INVALID_ZOOM_LEVEL:
            raise ValidationError(
                f"Invalid zoom level '{tier_name}'. Must be {', '.join(ZoomTier.names())}."
            )
        return zoom

    @staticmethod
    def tile_coordinate(lat_deg: float, lon_deg: float, zoom: int) -> Tuple[int, int]:
        """Convert lat/lon to tile coordinates.

        Both axes are floored. Results are clamped to the grid so that
        longitude 180 and latitudes past the Mercator limit stay addressable.
        """
        lat_rad = math.radians(lat_deg)
        n = 2 ** zoom
        xtile = math.floor((lon_deg + 180.0) / 360.0 * n)
        ytile = math.floor(
            (1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n
        )
        return min(max(xtile, 0), n - 1), min(max(ytile, 0), n - 1)

    @staticmethod
    def lat_lon_from_tile(x: int, y: int, zoom: int) -> Tuple[float, float]:
        """Top-left corner of a tile as (lat, lon)"""
        n = 2 ** zoom
        lon = x / n * 360.0 - 180.0
        lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))
        return lat, lon

    @staticmethod
    def tile_bounds(zoom: int, x: int, y: int) -> List[float]:
        """Return geographic bounds [minLon, minLat, maxLon, maxLat] for XYZ tile."""
        lat_max, lon_min = TileCalculator.lat_lon_from_tile(x, y, zoom)
        lat_min, lon_max = TileCalculator.lat_lon_from_tile(x + 1, y + 1, zoom)
        return [lon_min, lat_min, lon_max, lat_max]

    @staticmethod
    def tile_range_for_bbox(bbox: BoundingBox, tier_name: str) -> TileRange:
        """Tile index range covered by bbox at the given tier"""
        zoom = TileCalculator.require_zoom_level(tier_name)
        bbox.validate()
        x_start, y_start = TileCalculator.tile_coordinate(
            bbox.top_left.latitude, bbox.top_left.longitude, zoom)
        x_end, y_end = TileCalculator.tile_coordinate(
            bbox.bottom_right.latitude, bbox.bottom_right.longitude, zoom)
        return TileRange(tier=tier_name, zoom=zoom, x_start=x_start, x_end=x_end,
                         y_start=y_start, y_end=y_end)

    @staticmethod
    def tile_ranges_for_bbox(bbox: BoundingBox, tiers: Iterable[str]) -> List[TileRange]:
        """Ranges for every tier, refusing unknown tiers and empty ranges"""
        tiers = list(tiers)
        if not tiers:
            raise ValidationError("At least one zoom tier is required")
        for tier in tiers:
            TileCalculator.require_zoom_level(tier)

        ranges = []
        for tier in tiers:
            tile_range = TileCalculator.tile_range_for_bbox(bbox, tier)
            if tile_range.is_empty:
                raise ValidationError(
                    f"Empty tile range at tier '{tier}': "
                    f"x {tile_range.x_start}..{tile_range.x_end}, "
                    f"y {tile_range.y_start}..{tile_range.y_end}. "
                    "The first corner must be the top-left one."
                )
            ranges.append(tile_range)
        return ranges

    @staticmethod
    def count_tiles(bbox: BoundingBox, tiers: Iterable[str]) -> int:
        """Calculate total number of tiles for given bbox and tiers"""
        return sum(r.count for r in TileCalculator.tile_ranges_for_bbox(bbox, tiers))
