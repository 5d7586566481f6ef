#!/usr/bin/env python3
"""
AtlasOTM - Main Entry Point
Caches map tiles for an area and serves them for offline preview
"""

import sys
import logging
from typing import List, Optional

from atlas_otm.core.tile_cache_manager import TileCacheManager
from atlas_otm.exceptions.tile_cache_exceptions import AtlasOTMException
from atlas_otm.infrastructure.logging import LoggingManager


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the tile cache application"""
    args = TileCacheManager.build_parser().parse_args(argv)
    try:
        manager = TileCacheManager(args.config)
        LoggingManager.setup_logging(manager.config)
        logger = logging.getLogger(__name__)

        logger.debug("Starting AtlasOTM %s", args.command)
        return manager.run_from_command_line(args)

    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        return 1
    except AtlasOTMException as e:
        print(f"\nError: {e}")
        return 1
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        print("Please check your configuration and try again.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
