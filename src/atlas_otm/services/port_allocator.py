import logging
import socket

from atlas_otm.exceptions.tile_cache_exceptions import PortExhaustionError, ValidationError

logger = logging.getLogger(__name__)

MAX_PORT = 65535
DEFAULT_MAX_ATTEMPTS = 1000


def is_port_available(port: int, host: str = "") -> bool:
    """Bind a throwaway listener and release it immediately"""
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        probe.bind((host, port))
    except OSError:
        return False
    finally:
        probe.close()
    return True


def find_available_port(start_port: int, host: str = "",
                        max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> int:
    """First port >= start_port that can be bound.

    The port may be taken again before the caller binds it; callers should
    treat that bind failure as retryable.
    """
    if not 0 < start_port <= MAX_PORT:
        raise ValidationError(f"Invalid port {start_port}")

    port = start_port
    for _ in range(max_attempts):
        if port > MAX_PORT:
            break
        if is_port_available(port, host):
            return port
        logger.debug("Port %d is in use, trying %d", port, port + 1)
        port += 1

    raise PortExhaustionError(
        f"No free port found between {start_port} and {min(port, MAX_PORT)}"
    )
