from dataclasses import dataclass, field
from typing import Dict


DEFAULT_TILE_URL = "https://a.basemaps.cartocdn.com/rastertiles/voyager/{z}/{x}/{y}@2x.png"


@dataclass
class TileServer:
    """Upstream raster tile provider"""
    url: str = DEFAULT_TILE_URL
    headers: Dict[str, str] = field(default_factory=dict)

    def get_tile_url(self, zoom: int, x: int, y: int) -> str:
        """Substitute {z}, {x} and {y} into the URL template"""
        return (self.url
                .replace("{z}", str(zoom))
                .replace("{x}", str(x))
                .replace("{y}", str(y)))

    def get_headers(self) -> Dict[str, str]:
        return self.headers.copy()
