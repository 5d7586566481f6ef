import socket

import pytest

from atlas_otm.services.port_allocator import find_available_port, is_port_available
from atlas_otm.exceptions.tile_cache_exceptions import PortExhaustionError, ValidationError


@pytest.fixture
def occupied_port():
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    yield listener.getsockname()[1]
    listener.close()


def test_occupied_port_is_skipped(occupied_port):
    if occupied_port >= 65535:
        pytest.skip("no higher port to move to")

    port = find_available_port(occupied_port, host="127.0.0.1")

    assert port > occupied_port
    assert is_port_available(port, "127.0.0.1")


def test_free_start_port_is_returned(occupied_port):
    assert not is_port_available(occupied_port, "127.0.0.1")

    free = find_available_port(occupied_port, host="127.0.0.1")
    assert find_available_port(free, host="127.0.0.1") == free


def test_retry_budget_is_bounded(occupied_port):
    with pytest.raises(PortExhaustionError):
        find_available_port(occupied_port, host="127.0.0.1", max_attempts=1)


@pytest.mark.parametrize("port", [0, -1, 70000])
def test_invalid_start_port(port):
    with pytest.raises(ValidationError):
        find_available_port(port)
