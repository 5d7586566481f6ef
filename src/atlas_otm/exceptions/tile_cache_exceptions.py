from typing import Optional


class AtlasOTMException(Exception):
    """Base exception for AtlasOTM"""
    pass


class ConfigurationError(AtlasOTMException):
    """Configuration related errors"""
    pass


class ValidationError(AtlasOTMException):
    """Validation related errors"""
    pass


class TileError(AtlasOTMException):
    """Error tied to a single tile of a run"""

    def __init__(self, message: str, tier: Optional[str] = None,
                 x: Optional[int] = None, y: Optional[int] = None):
        super().__init__(message)
        self.tier = tier
        self.x = x
        self.y = y


class FetchError(TileError):
    """Upstream request failed (transport error or non-success status)"""
    pass


class WriteError(TileError):
    """Writing a tile or creating its directory failed"""
    pass


class PortExhaustionError(AtlasOTMException):
    """No free port found within the retry budget"""
    pass
