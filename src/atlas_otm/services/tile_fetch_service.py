import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from atlas_otm.interfaces.tile_cache import ITileFetcher
from atlas_otm.models.tile_server import TileServer
from atlas_otm.exceptions.tile_cache_exceptions import FetchError

logger = logging.getLogger(__name__)


class TileFetchService(ITileFetcher):
    """Fetches tile bytes from the upstream provider"""

    def __init__(self, server: Optional[TileServer] = None, timeout: float = 30,
                 retry_attempts: int = 0, pool_size: int = 4):
        self.server = server or TileServer()
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.pool_size = pool_size
        self._session = None

    def create_session(self) -> requests.Session:
        """Create a pooled session; retries are only mounted when configured"""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.retry_attempts,
            backoff_factor=1.0,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=self.pool_size,
            pool_maxsize=self.pool_size
        )

        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    @property
    def session(self):
        if self._session is None:
            self._session = self.create_session()
        return self._session

    def fetch_tile(self, zoom: int, x: int, y: int) -> bytes:
        """Binary GET of a single tile; any transport error or non-2xx is a FetchError"""
        tile_url = self.server.get_tile_url(zoom, x, y)
        logger.debug("GET %s", tile_url)
        try:
            response = self.session.get(tile_url, headers=self.server.get_headers(),
                                        timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch tile {zoom}/{x}/{y} from {tile_url}: {e}",
                             x=x, y=y)
        if not 200 <= response.status_code < 300:
            raise FetchError(
                f"Failed to fetch tile {zoom}/{x}/{y} from {tile_url}: HTTP {response.status_code}",
                x=x, y=y)
        return response.content

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
