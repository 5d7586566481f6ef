from dataclasses import dataclass

from atlas_otm.exceptions.tile_cache_exceptions import ValidationError


@dataclass(frozen=True)
class GeoPoint:
    """Latitude/longitude pair in degrees"""
    latitude: float
    longitude: float

    def validate(self) -> None:
        """Reject coordinates the Web-Mercator formula cannot handle"""
        if not -90 < self.latitude < 90:
            raise ValidationError(
                f"Invalid latitude {self.latitude}: must be between -90 and 90 (exclusive)"
            )
        if not -180 <= self.longitude <= 180:
            raise ValidationError(
                f"Invalid longitude {self.longitude}: must be between -180 and 180"
            )


@dataclass(frozen=True)
class BoundingBox:
    """Rectangle given by its top-left and bottom-right corners"""
    top_left: GeoPoint
    bottom_right: GeoPoint

    @classmethod
    def from_corners(cls, lat1: float, long1: float, lat2: float, long2: float) -> "BoundingBox":
        return cls(GeoPoint(lat1, long1), GeoPoint(lat2, long2))

    def validate(self) -> None:
        self.top_left.validate()
        self.bottom_right.validate()


@dataclass(frozen=True)
class TileRange:
    """Inclusive tile index range of a bounding box at one tier"""
    tier: str
    zoom: int
    x_start: int
    x_end: int
    y_start: int
    y_end: int

    @property
    def is_empty(self) -> bool:
        return self.x_end < self.x_start or self.y_end < self.y_start

    @property
    def count(self) -> int:
        if self.is_empty:
            return 0
        return (self.x_end - self.x_start + 1) * (self.y_end - self.y_start + 1)

    def tiles(self):
        """Yield (x, y) by x ascending, then y ascending"""
        for x in range(self.x_start, self.x_end + 1):
            for y in range(self.y_start, self.y_end + 1):
                yield x, y
