from typing import Dict, List, Optional, Set, Tuple

import pytest

from atlas_otm.interfaces.tile_cache import ITileFetcher
from atlas_otm.models.geo import BoundingBox
from atlas_otm.services.config_service import ConfigService
from atlas_otm.exceptions.tile_cache_exceptions import FetchError


PNG_HEADER = b"\x89PNG\r\n\x1a\n"


def tile_payload(zoom: int, x: int, y: int) -> bytes:
    return PNG_HEADER + f"{zoom}/{x}/{y}".encode()


class FakeFetcher(ITileFetcher):
    """Serves deterministic bytes per tile and records every request"""

    def __init__(self, failing: Optional[Set[Tuple[int, int, int]]] = None,
                 payloads: Optional[Dict[Tuple[int, int, int], bytes]] = None):
        self.failing = failing or set()
        self.payloads = payloads or {}
        self.calls: List[Tuple[int, int, int]] = []
        self.closed = False

    def fetch_tile(self, zoom: int, x: int, y: int) -> bytes:
        self.calls.append((zoom, x, y))
        if (zoom, x, y) in self.failing:
            raise FetchError(f"Failed to fetch tile {zoom}/{x}/{y}: HTTP 503", x=x, y=y)
        return self.payloads.get((zoom, x, y), tile_payload(zoom, x, y))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def small_bbox():
    """Two region tiles: x=506, y=328..329"""
    return BoundingBox.from_corners(54.1, -2.1, 53.9, -1.9)


@pytest.fixture
def wide_bbox():
    """Several columns and rows at region and station tiers"""
    return BoundingBox.from_corners(54.1, -2.5, 53.9, -1.9)


@pytest.fixture
def config(tmp_path):
    return ConfigService().from_dict({
        'cache_root': str(tmp_path / 'tiles'),
        'delay_seconds': 0,
        'error_log': str(tmp_path / 'crash.log'),
    })
