"""
HTTP exposition endpoint.

A stdlib HTTPServer handling one request at a time:
- GET /metrics -> Prometheus text exposition of the registry
- anything else -> 404 "Not found"

Lifecycle hooks let the embedding application instrument server start and
every request without the server knowing about it.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import urlsplit

from .examples import ExampleRoutes
from .exposition import CONTENT_TYPE
from .registry import MetricsRegistry

logger = logging.getLogger(__name__)

METRICS_PATH = "/metrics"


@dataclass
class ServerHooks:
    """Optional callbacks invoked by the HTTP server"""

    on_start: Callable[[], None] | None = None
    on_request_start: Callable[[str, str], None] | None = None
    on_request_end: Callable[[str, str, int], None] | None = None


@dataclass(frozen=True)
class Response:
    status: int
    body: bytes
    content_type: str = "text/plain"
    headers: dict[str, str] = field(default_factory=dict)


NOT_FOUND = Response(404, b"Not found")
SERVER_ERROR = Response(500, b"Internal Server Error")


class MetricsHTTPD(HTTPServer):
    """HTTPServer carrying the registry and hooks for its handlers"""

    def __init__(
        self,
        server_address: tuple[str, int],
        registry: MetricsRegistry,
        hooks: ServerHooks | None = None,
        examples: ExampleRoutes | None = None,
    ):
        self.registry = registry
        self.hooks = hooks or ServerHooks()
        self.examples = examples
        super().__init__(server_address, MetricsHTTPHandler)


class MetricsHTTPHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the metrics endpoint."""

    server: MetricsHTTPD

    def log_message(self, format, *args):
        """Route access logs to our logger."""
        logger.debug(f"HTTP {self.client_address[0]} - {format % args}")

    def do_GET(self):
        self._handle("GET")

    def do_POST(self):
        self._handle("POST")

    def do_PUT(self):
        self._handle("PUT")

    def do_DELETE(self):
        self._handle("DELETE")

    def _handle(self, method: str) -> None:
        path = urlsplit(self.path).path
        hooks = self.server.hooks

        try:
            if hooks.on_request_start:
                hooks.on_request_start(method, path)

            response = self._route(method, path)

            if hooks.on_request_end:
                hooks.on_request_end(method, path, response.status)
        except Exception as e:
            logger.error(
                f"HTTP handler error: {e}",
                extra={"method": method, "path": path},
                exc_info=True,
            )
            response = SERVER_ERROR

        self._send(response)

    def _route(self, method: str, path: str) -> Response:
        if method != "GET":
            return NOT_FOUND

        if path == METRICS_PATH:
            text = self.server.registry.render()
            return Response(
                200,
                text.encode("utf-8"),
                content_type=CONTENT_TYPE,
                headers={"Cache-Control": "no-cache"},
            )

        examples = self.server.examples
        if examples is not None and path in examples.routes:
            return Response(200, examples.routes[path]().encode("utf-8"))

        return NOT_FOUND

    def _send(self, response: Response) -> None:
        self.send_response(response.status)
        self.send_header("Content-Type", response.content_type)
        self.send_header("Content-Length", str(len(response.body)))
        for name, value in response.headers.items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(response.body)


class MetricsHTTPServer:
    """HTTP server wrapper for the metrics endpoint."""

    def __init__(
        self,
        registry: MetricsRegistry,
        host: str = "0.0.0.0",
        port: int = 9090,
        hooks: ServerHooks | None = None,
        examples: ExampleRoutes | None = None,
    ):
        self.registry = registry
        self.host = host
        self.port = port
        self.hooks = hooks or ServerHooks()
        self.examples = examples
        self.server: MetricsHTTPD | None = None
        self.thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); the port is resolved once the server is bound."""
        if self.server:
            host, port = self.server.server_address[:2]
            return str(host), int(port)
        return self.host, self.port

    def _bind(self) -> MetricsHTTPD:
        if self.server:
            logger.warning("HTTP server already bound")
            return self.server

        try:
            self.server = MetricsHTTPD(
                (self.host, self.port), self.registry, self.hooks, self.examples
            )
        except OSError as e:
            logger.error(f"Failed to bind HTTP server on {self.host}:{self.port}: {e}")
            raise

        host, port = self.address
        logger.info(f"Metrics server running at http://{host}:{port}")
        logger.info(f"  - {METRICS_PATH} instrumented for Prometheus")
        if self.examples is not None:
            logger.info("  - /example/metrics set some fake metrics")
            logger.info("  - /example/flush flush all metrics")
            logger.info("  - /example/delay set a fake delay")

        if self.hooks.on_start:
            self.hooks.on_start()

        return self.server

    def start(self) -> MetricsHTTPD:
        """Start the HTTP server in a background thread."""
        if self.thread:
            logger.warning("HTTP server already started")
            return self.server

        server = self._bind()
        self.thread = threading.Thread(
            target=server.serve_forever, name="MetricsHTTPServer", daemon=True
        )
        self.thread.start()
        return server

    def serve_forever(self) -> None:
        """Serve in the calling thread until interrupted or stopped."""
        server = self._bind()
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down metrics server")
        finally:
            server.server_close()
            self.server = None

    def stop(self) -> None:
        """Stop the HTTP server."""
        if self.server:
            logger.info("Stopping metrics HTTP server...")
            self.server.shutdown()
            if self.thread:
                self.thread.join(timeout=5)
            self.server.server_close()
            self.server = None
            self.thread = None


def start_httpd(
    registry: MetricsRegistry,
    host: str = "0.0.0.0",
    port: int = 9090,
    hooks: ServerHooks | None = None,
    examples: ExampleRoutes | None = None,
) -> MetricsHTTPServer:
    """
    Start the metrics HTTP server in a background thread.

    Args:
        registry: Registry rendered on /metrics
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 9090, 0 picks a free port)
        hooks: Optional lifecycle callbacks
        examples: Optional /example routes

    Returns:
        The running MetricsHTTPServer
    """
    server = MetricsHTTPServer(registry, host=host, port=port, hooks=hooks, examples=examples)
    server.start()
    return server
