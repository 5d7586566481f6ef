import http.server
import json
import logging
import os
import socketserver
import urllib.parse
import webbrowser
from typing import Callable, Dict, Any, Optional

from atlas_otm.core.tile_fetch_pipeline import CancellationToken, FetchOptions, TileFetchPipeline
from atlas_otm.infrastructure.error_log import ErrorLog
from atlas_otm.interfaces.tile_cache import IProgressSink, ITileFetcher
from atlas_otm.models.geo import BoundingBox
from atlas_otm.models.zoom_tier import INVALID_ZOOM_LEVEL
from atlas_otm.services.config_service import ConfigService
from atlas_otm.services.port_allocator import find_available_port
from atlas_otm.services.tile_fetch_service import TileFetchService
from atlas_otm.utils.tile_calculator import TileCalculator
from atlas_otm.exceptions.tile_cache_exceptions import (
    PortExhaustionError, TileError, ValidationError,
)

logger = logging.getLogger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'templates')
CONTENT_TYPES = {
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.html': 'text/html; charset=utf-8',
    '.json': 'application/json',
}


class NdjsonStreamSink(IProgressSink):
    """Writes each event as one JSON line to an HTTP response"""

    def __init__(self, wfile):
        self.wfile = wfile

    def emit(self, event) -> None:
        data = event if isinstance(event, dict) else event.to_dict()
        self.wfile.write((json.dumps(data) + "\n").encode('utf-8'))
        self.wfile.flush()


class _PreviewServer(socketserver.ThreadingTCPServer):
    daemon_threads = True


class HTTPServerService:
    """Preview server: viewer page, cached tiles and on-demand generation"""

    def __init__(self, port: int = 3000, cache_root: Optional[str] = None,
                 config: Optional[Dict[str, Any]] = None, host: str = "",
                 fetcher_factory: Optional[Callable[[], ITileFetcher]] = None,
                 max_bind_attempts: int = 10):
        self.config = config or ConfigService().from_dict({})
        self.port = port
        self.host = host
        self.cache_root = os.path.abspath(cache_root or self.config['cache_root'])
        self.max_bind_attempts = max_bind_attempts
        self.fetcher_factory = fetcher_factory or self._default_fetcher
        self.httpd = None

    def _default_fetcher(self) -> ITileFetcher:
        server = ConfigService().get_tile_server(self.config)
        return TileFetchService(server, timeout=self.config['timeout'],
                                retry_attempts=self.config['retry_attempts'])

    def create_request_handler(self):
        """Create HTTP request handler bound to this service"""
        service = self

        class PreviewRequestHandler(http.server.BaseHTTPRequestHandler):
            timeout = 60

            def log_message(self, format, *args):
                logger.debug("%s - %s", self.address_string(), format % args)

            def end_headers(self):
                self.send_header('Access-Control-Allow-Origin', '*')
                self.send_header('Access-Control-Allow-Methods', 'GET, OPTIONS')
                self.send_header('Access-Control-Allow-Headers', 'Content-Type, Accept')
                super().end_headers()

            def do_OPTIONS(self):
                self.send_response(200)
                self.end_headers()

            def do_GET(self):
                parsed = urllib.parse.urlsplit(self.path)
                path = urllib.parse.unquote(parsed.path)
                if path in ('/', '/index.html'):
                    self._serve_index()
                elif path.startswith('/cache/'):
                    self._handle_cache_request(path[len('/cache/'):])
                elif path.startswith('/generate/'):
                    self._handle_generate(path[len('/generate/'):],
                                          urllib.parse.parse_qs(parsed.query))
                else:
                    self.send_error(404, f'Not found: {path}')

            def _serve_index(self):
                file_path = os.path.join(TEMPLATE_DIR, 'index.html')
                if os.path.isfile(file_path):
                    self._serve_file(file_path)
                else:
                    self.send_error(404, 'Index file not found')

            def _handle_cache_request(self, rel_path: str):
                file_path = os.path.join(service.cache_root, *rel_path.split('/'))
                if not self._is_safe_path(file_path):
                    self.send_error(403, 'Access denied')
                    return
                if os.path.isfile(file_path):
                    self._serve_file(file_path)
                else:
                    self.send_error(404, f'File not found: /cache/{rel_path}')

            def _is_safe_path(self, file_path: str) -> bool:
                """Check the path stays inside the cache root"""
                canonical_path = os.path.realpath(file_path)
                base_path = os.path.realpath(service.cache_root)
                return os.path.commonpath([canonical_path, base_path]) == base_path

            def _serve_file(self, file_path: str):
                with open(file_path, 'rb') as f:
                    content = f.read()
                ext = os.path.splitext(file_path)[1].lower()
                self.send_response(200)
                self.send_header('Content-Type', CONTENT_TYPES.get(ext, 'application/octet-stream'))
                self.send_header('Content-Length', str(len(content)))
                self.end_headers()
                self.wfile.write(content)

            def _send_json_response(self, data: dict, status: int = 200):
                response_bytes = json.dumps(data).encode('utf-8')
                self.send_response(status)
                self.send_header('Content-Type', 'application/json')
                self.send_header('Content-Length', str(len(response_bytes)))
                self.send_header('Cache-Control', 'no-cache')
                self.end_headers()
                self.wfile.write(response_bytes)

            def _handle_generate(self, rel_path: str, query: Dict[str, list]):
                """/generate/<tier>/<lat1>/<long1>/<lat2>/<long2> streamed as NDJSON"""
                parts = [p for p in rel_path.split('/') if p]
                if len(parts) != 5:
                    self._send_json_response(
                        {'error': 'Expected /generate/<tier>/<lat1>/<long1>/<lat2>/<long2>'}, 400)
                    return

                tier = parts[0]
                if TileCalculator.zoom_level_for(tier) == INVALID_ZOOM_LEVEL:
                    self._send_json_response({'error': f"Invalid zoom level '{tier}'"}, 404)
                    return

                try:
                    lat1, long1, lat2, long2 = (float(p) for p in parts[1:])
                except ValueError:
                    self._send_json_response({'error': 'Coordinates must be numbers'}, 400)
                    return

                fast = query.get('fast', ['0'])[0].lower() in ('1', 'true', 'yes')
                options = FetchOptions.from_config(service.config, fast=fast or None)
                fetcher = service.fetcher_factory()
                pipeline = TileFetchPipeline(fetcher, ErrorLog(service.config['error_log']))
                try:
                    events = pipeline.run(BoundingBox.from_corners(lat1, long1, lat2, long2),
                                          [tier], service.cache_root, options,
                                          CancellationToken())
                except ValidationError as e:
                    fetcher.close()
                    self._send_json_response({'error': str(e)}, 400)
                    return

                self.send_response(200)
                self.send_header('Content-Type', 'application/x-ndjson')
                self.send_header('Cache-Control', 'no-cache')
                self.end_headers()

                sink = NdjsonStreamSink(self.wfile)
                try:
                    for event in events:
                        sink.emit(event)
                except TileError as e:
                    sink.emit({'type': 'error', 'status': 'failed', 'tier': e.tier,
                               'x': e.x, 'y': e.y, 'error': str(e)})
                finally:
                    fetcher.close()

        return PreviewRequestHandler

    def bind(self) -> int:
        """Bind to the first free port from self.port; returns the port"""
        handler = self.create_request_handler()
        port = self.port
        for _ in range(self.max_bind_attempts):
            port = find_available_port(port, self.host)
            try:
                self.httpd = _PreviewServer((self.host, port), handler)
            except OSError as e:
                logger.warning("Port %d was taken before binding (%s), retrying", port, e)
                port += 1
                continue
            self.port = port
            return port
        raise PortExhaustionError(f"Could not bind a port after {self.max_bind_attempts} attempts")

    def serve_forever(self) -> None:
        self.httpd.serve_forever()

    def start(self, open_browser: bool = False) -> None:
        """Bind and serve until interrupted"""
        self.bind()
        url = f"http://localhost:{self.port}/"
        print(f"Server running at {url}")
        print(f"Serving tiles from: {self.cache_root}")
        print("Press Ctrl+C to stop\n")
        if open_browser:
            webbrowser.open(url)
        try:
            self.serve_forever()
        except KeyboardInterrupt:
            print("\nServer stopped by user")
        finally:
            self.httpd.server_close()

    def stop(self) -> None:
        """Stop the HTTP server"""
        if self.httpd is not None:
            self.httpd.shutdown()
            self.httpd.server_close()
            logger.info("Server stopped")
