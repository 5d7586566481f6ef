import argparse
import signal
import sys
import threading
from contextlib import contextmanager
from typing import List, Optional

from atlas_otm import __version__
from atlas_otm.core.tile_fetch_pipeline import CancellationToken, FetchOptions, TileFetchPipeline
from atlas_otm.infrastructure.error_log import ErrorLog
from atlas_otm.interfaces.tile_cache import IProgressSink
from atlas_otm.models.geo import BoundingBox, GeoPoint
from atlas_otm.models.progress import ErrorEvent, ProgressEvent, SummaryEvent
from atlas_otm.models.zoom_tier import ZoomTier
from atlas_otm.services.config_service import ConfigService, DEFAULT_CONFIG_PATH
from atlas_otm.services.http_server_service import HTTPServerService
from atlas_otm.services.tile_fetch_service import TileFetchService
from atlas_otm.utils.tile_calculator import TileCalculator
from atlas_otm.exceptions.tile_cache_exceptions import TileError


class ConsoleProgressSink(IProgressSink):
    """Renders events on a single refreshing console line"""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def emit(self, event) -> None:
        if isinstance(event, ProgressEvent):
            line = (f"Processing tile {event.processed_tiles}/{event.total_tiles} "
                    f"({event.percent:.2f}%) - Time per tile: {event.time_per_tile:.2f} seconds "
                    f"- ETA: {event.eta}")
            if event.bytes_transferred is not None:
                line += (f" - {event.tiles_per_second:.2f} tiles/s, "
                         f"{event.bytes_transferred / 1024:.1f} KiB")
            self.stream.write("\r" + line)
        elif isinstance(event, ErrorEvent):
            self.stream.write(f"\nFailed to fetch tile at {event.x}, {event.y}: {event.error}\n")
        elif isinstance(event, SummaryEvent):
            self.stream.write("\n")
            if event.status == "cancelled":
                self.stream.write(f"Stopped after {event.processed_tiles}/{event.total_tiles} tiles "
                                  f"in {event.elapsed_seconds:.2f} seconds.\n")
            else:
                self.stream.write(f"Completed tile generation! Processed {event.processed_tiles}/"
                                  f"{event.total_tiles} tiles in {event.elapsed_seconds:.2f} seconds "
                                  f"({event.average_time_per_tile:.2f} s/tile).\n")
                if event.failed_tiles:
                    self.stream.write(f"{event.failed_tiles} tiles failed, see the error log.\n")
        self.stream.flush()


class TileCacheManager:
    """Main manager class for caching and serving tiles"""

    def __init__(self, config_path: Optional[str] = DEFAULT_CONFIG_PATH):
        self.config_service = ConfigService()
        self.config = self.config_service.load_config(config_path)

    @contextmanager
    def _interrupt_handler(self, token: CancellationToken):
        """First Ctrl+C finishes the current tile, the second aborts"""
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def handle(signum, frame):
            if token.cancelled:
                raise KeyboardInterrupt
            print("\nInterrupt received, stopping after the current tile "
                  "(press Ctrl+C again to abort)...")
            token.cancel()

        previous = signal.signal(signal.SIGINT, handle)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)

    def generate(self, bbox: BoundingBox, tiers: List[str], cache_root: Optional[str] = None,
                 options: Optional[FetchOptions] = None,
                 sink: Optional[IProgressSink] = None) -> bool:
        """Fetch every tile of bbox at the given tiers into the cache"""
        cache_root = cache_root or self.config['cache_root']
        options = options or FetchOptions.from_config(self.config)
        sink = sink or ConsoleProgressSink()
        token = CancellationToken()

        fetcher = TileFetchService(self.config_service.get_tile_server(self.config),
                                   timeout=self.config['timeout'],
                                   retry_attempts=self.config['retry_attempts'],
                                   pool_size=max(4, options.max_workers))
        pipeline = TileFetchPipeline(fetcher, ErrorLog(self.config['error_log']))

        print("Finding coordinate data...")
        try:
            for tile_range in pipeline.plan(bbox, tiers):
                print(f"  {tile_range.tier} (zoom {tile_range.zoom}): x {tile_range.x_start}-"
                      f"{tile_range.x_end}, y {tile_range.y_start}-{tile_range.y_end} "
                      f"-> {tile_range.count} tiles")

            with self._interrupt_handler(token):
                summary = pipeline.run_to_sink(sink, bbox, tiers, cache_root, options, token)
        except TileError as e:
            print(f"\nError processing tile at {e.x}, {e.y} ({e.tier}): {e}. Exiting.")
            print(f"Details appended to {self.config['error_log']}")
            return False
        finally:
            fetcher.close()

        return summary is not None and summary.status == "completed" and not summary.failed_tiles

    def coords(self, lat: float, lon: float, level: str) -> None:
        """Print tile coordinates of a point"""
        zoom = TileCalculator.require_zoom_level(level)
        GeoPoint(lat, lon).validate()
        x, y = TileCalculator.tile_coordinate(lat, lon, zoom)
        print(f"Tile coordinates at zoom level {level}: x={x}, y={y}")

    def serve(self, port: Optional[int] = None, cache_root: Optional[str] = None,
              host: str = "", open_browser: bool = False) -> None:
        """Run the preview server until interrupted"""
        service = HTTPServerService(port=port or self.config['server_port'],
                                    cache_root=cache_root or self.config['cache_root'],
                                    config=self.config, host=host)
        service.start(open_browser=open_browser)

    @staticmethod
    def _confirm(question: str, default: bool = True) -> bool:
        hint = "Y/n" if default else "y/N"
        try:
            raw = input(f"{question} [{hint}]: ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            return False
        if not raw:
            return default
        return raw in ("y", "yes")

    @staticmethod
    def build_parser() -> argparse.ArgumentParser:
        tiers = ", ".join(ZoomTier.names())
        parser = argparse.ArgumentParser(
            prog='atlas-otm',
            description='AtlasOTM - cache map tiles and serve them for offline preview.',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=(
                'Examples:\n\n'
                '1) Cache a small area at region detail:\n'
                '   atlas-otm generate --lat1 54.1 --long1 -2.1 --lat2 53.9 --long2 -1.9\n\n'
                '2) Several tiers, no delay between requests:\n'
                '   atlas-otm generate -z country region --lat1 54.1 --long1 -2.1 --lat2 53.9 --long2 -1.9 --fast\n\n'
                '3) Preview cached tiles:\n'
                '   atlas-otm server --port 3000\n\n'
                'Notes:\n'
                '- (lat1, long1) is the top-left corner, (lat2, long2) the bottom-right one.\n'
                '- Cache layout: <cache_root>/<tier>/<tier>_<x>_<y>.png'
            )
        )
        parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
        parser.add_argument('-c', '--config', default=DEFAULT_CONFIG_PATH,
                            help=f'JSON configuration file (default: {DEFAULT_CONFIG_PATH}, optional)')
        subparsers = parser.add_subparsers(dest='command', required=True)

        generate = subparsers.add_parser('generate', help='Cache map tiles')
        generate.add_argument('-z', '--zoom', nargs='+', default=['region'], metavar='TIER',
                              help=f'Zoom tiers to cache: {tiers} (default: region)')
        generate.add_argument('--lat1', type=float, required=True, help='Top left latitude')
        generate.add_argument('--long1', type=float, required=True, help='Top left longitude')
        generate.add_argument('--lat2', type=float, required=True, help='Bottom right latitude')
        generate.add_argument('--long2', type=float, required=True, help='Bottom right longitude')
        generate.add_argument('-f', '--fast', action='store_true',
                              help='Skip the delay between tile requests')
        generate.add_argument('--cache-dir', help='Cache root directory (default: ~/AtlasOSMTiles)')
        generate.add_argument('--continue-on-error', action='store_true',
                              help='Skip failing tiles instead of aborting the run')
        generate.add_argument('--detailed', action='store_true',
                              help='Report throughput and bytes transferred')
        generate.add_argument('--workers', type=int, help='Concurrent fetches (default: 1)')
        serve_group = generate.add_mutually_exclusive_group()
        serve_group.add_argument('--serve', dest='serve', action='store_true', default=None,
                                 help='Launch the preview server when done without asking')
        serve_group.add_argument('--no-serve', dest='serve', action='store_false',
                                 help='Do not offer the preview server')

        server = subparsers.add_parser('server', help='Run map frontend and serve cached files')
        server.add_argument('-p', '--port', type=int, help='Server port (default: 3000, next free one is used)')
        server.add_argument('--cache-dir', help='Cache root directory (default: ~/AtlasOSMTiles)')

        coords = subparsers.add_parser('coords', help='Convert latitude/longitude to tile coordinates')
        coords.add_argument('--lat', type=float, required=True, help='Latitude (between -90 and 90)')
        coords.add_argument('--long', type=float, required=True, help='Longitude (between -180 and 180)')
        coords.add_argument('-l', '--level', default='region',
                            help=f'Zoom tier: {tiers} (default: region)')
        return parser

    def run_from_command_line(self, args: argparse.Namespace) -> int:
        """Dispatch parsed command-line arguments"""
        if args.command == 'coords':
            self.coords(args.lat, args.long, args.level)
            return 0

        if args.command == 'server':
            self.serve(port=args.port, cache_root=args.cache_dir)
            return 0

        options = FetchOptions.from_config(
            self.config,
            fast=args.fast or None,
            on_error='continue' if args.continue_on_error else None,
            detailed=args.detailed or None,
            max_workers=args.workers,
        )
        bbox = BoundingBox.from_corners(args.lat1, args.long1, args.lat2, args.long2)
        ok = self.generate(bbox, args.zoom, cache_root=args.cache_dir, options=options)
        if not ok:
            return 1

        serve = args.serve
        if serve is None:
            serve = self._confirm("Do you want to launch a server to preview changes?")
        if serve:
            self.serve(cache_root=args.cache_dir, open_browser=True)
        return 0
