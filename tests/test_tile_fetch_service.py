from typing import Dict

import pytest
import requests

from atlas_otm.models.tile_server import TileServer
from atlas_otm.services.tile_fetch_service import TileFetchService
from atlas_otm.exceptions.tile_cache_exceptions import FetchError


class DummyResponse:
    def __init__(self, status_code: int, content: bytes):
        self.status_code = status_code
        self.content = content


class DummySession:
    def __init__(self, url_to_payload: Dict[str, bytes]):
        self.url_to_payload = url_to_payload
        self.requests = []
        self.closed = False

    def get(self, url, headers=None, timeout=None):
        self.requests.append((url, headers, timeout))
        payload = self.url_to_payload.get(url)
        if payload is None:
            return DummyResponse(404, b"")
        if isinstance(payload, Exception):
            raise payload
        return DummyResponse(200, payload)

    def close(self):
        self.closed = True


def make_service_with_mocked_session(url_to_payload) -> TileFetchService:
    server = TileServer(url="https://tiles.example.com/{z}/{x}/{y}@2x.png",
                        headers={"User-Agent": "test"})
    service = TileFetchService(server, timeout=5)
    session = DummySession(url_to_payload)

    # Monkeypatch instance method
    service.create_session = lambda: session  # type: ignore
    return service


def test_template_substitution():
    server = TileServer(url="https://a.example.com/base/{z}/{x}/{y}@2x.png")
    assert server.get_tile_url(10, 506, 328) == "https://a.example.com/base/10/506/328@2x.png"


def test_fetch_returns_body_bytes():
    png = b"\x89PNG\r\n\x1a\n" + b"body"
    service = make_service_with_mocked_session({
        "https://tiles.example.com/12/2024/1315@2x.png": png,
    })

    assert service.fetch_tile(12, 2024, 1315) == png
    url, headers, timeout = service.session.requests[0]
    assert headers == {"User-Agent": "test"}
    assert timeout == 5


def test_non_success_status_is_fetch_error():
    service = make_service_with_mocked_session({})

    with pytest.raises(FetchError, match="HTTP 404") as excinfo:
        service.fetch_tile(8, 1, 2)

    assert (excinfo.value.x, excinfo.value.y) == (1, 2)


def test_transport_error_is_fetch_error():
    service = make_service_with_mocked_session({
        "https://tiles.example.com/8/1/2@2x.png": requests.ConnectionError("connection refused"),
    })

    with pytest.raises(FetchError, match="connection refused"):
        service.fetch_tile(8, 1, 2)


def test_close_releases_session():
    service = make_service_with_mocked_session({})
    session = service.session
    service.close()
    assert session.closed
    assert service._session is None


def test_real_session_has_no_retries_by_default():
    service = TileFetchService()
    adapter = service.create_session().get_adapter("https://example.com")
    assert adapter.max_retries.total == 0

    retrying = TileFetchService(retry_attempts=3)
    assert retrying.create_session().get_adapter("https://example.com").max_retries.total == 3
