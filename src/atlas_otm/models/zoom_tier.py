from enum import Enum


INVALID_ZOOM_LEVEL = 0


class ZoomTier(Enum):
    """Named detail levels and their slippy-map zoom"""
    COUNTRY = "country"
    REGION = "region"
    STATION = "station"

    @property
    def zoom_level(self) -> int:
        return _ZOOM_LEVELS[self]

    @classmethod
    def names(cls):
        return [tier.value for tier in cls]


_ZOOM_LEVELS = {
    ZoomTier.COUNTRY: 8,
    ZoomTier.REGION: 10,
    ZoomTier.STATION: 12,
}
