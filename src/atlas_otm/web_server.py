#!/usr/bin/env python3
"""
HTTP Server for AtlasOTM

Serves the cached tiles and the map viewer page, and generates tiles on
demand through /generate/<tier>/<lat1>/<long1>/<lat2>/<long2>.

Usage:
    atlas-otm-server [port]

URL:
    http://localhost:3000 (or the next free port)
"""

import sys

from atlas_otm.services.config_service import ConfigService
from atlas_otm.services.http_server_service import HTTPServerService
from atlas_otm.exceptions.tile_cache_exceptions import AtlasOTMException
from atlas_otm.infrastructure.logging import LoggingManager


def main() -> int:
    """Start the preview server from config.json and an optional port argument"""
    port = None
    if len(sys.argv) > 1:
        if not sys.argv[1].isdigit():
            print(f"Invalid port: {sys.argv[1]}")
            return 1
        port = int(sys.argv[1])

    try:
        config = ConfigService().load_config()
        LoggingManager.setup_logging(config)

        server_service = HTTPServerService(port=port or config['server_port'], config=config)
        server_service.start()
        return 0

    except AtlasOTMException as e:
        print(f"Server error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
