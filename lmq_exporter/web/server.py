"""
HTTP server exposing the Prometheus registry plus health endpoints.
Each request runs in its own thread; scrapes may overlap.

Endpoints:
    GET <metrics_path> - Prometheus exposition of the registry
    GET /health        - Liveness: process is alive (always 200 if running)
    GET /ready         - Readiness: last upstream refresh succeeded
    GET /              - Landing page linking to the metrics path

Any exception raised while handling a request is caught at the handler
boundary, logged, and answered with a 500 so one bad scrape cannot take the
exporter down.
"""
import json
import socket
import threading
import time
from datetime import datetime, timezone
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from typing import Any, Dict, Optional, Tuple

from prometheus_client import CollectorRegistry
from prometheus_client.exposition import choose_encoder

from lmq_exporter.common.correlation import ScrapeContext, set_component
from lmq_exporter.common.logging_config import get_logger

logger = get_logger(__name__)

_LANDING_PAGE = """<html>
<head><title>LMQ Exporter</title></head>
<body>
<h1>LMQ Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ExporterHTTPHandler(BaseHTTPRequestHandler):
    """HTTP request handler for metrics and health endpoints."""

    # Class-level references (set by ExporterServer)
    registry: Optional[CollectorRegistry] = None
    metrics_path: str = "/metrics"
    collector = None
    start_time: float = 0.0

    protocol_version = "HTTP/1.0"

    def do_GET(self):
        """Handle GET requests inside the top-level error boundary."""
        # Handler threads start with an empty context
        set_component("exporter")
        with ScrapeContext():
            try:
                self._route()
            except Exception:
                logger.exception(f"Unhandled error serving {self.path}")
                self._send_error_response()

    def _route(self) -> None:
        path = self.path.split("?", 1)[0]

        if path == self.metrics_path:
            self._send_metrics()

        elif path == "/health":
            self._send_json(200, {
                "status": "alive",
                "uptime_seconds": round(time.time() - self.start_time, 1),
                "timestamp": _utc_now(),
            })

        elif path == "/ready":
            if self.collector is None:
                self._send_json(503, {"status": "not_ready", "error": "No collector configured"})
                return
            ready = self.collector.is_ready()
            self._send_json(200 if ready else 503, {
                "status": "ready" if ready else "not_ready",
                "refresh": self.collector.refresh_status(),
                "timestamp": _utc_now(),
            })

        elif path == "/":
            body = _LANDING_PAGE.format(path=self.metrics_path).encode("utf-8")
            self._send_body(200, "text/html; charset=utf-8", body)

        else:
            self._send_json(404, {"error": "Not found"})

    def _send_metrics(self) -> None:
        encoder, content_type = choose_encoder(self.headers.get("Accept"))
        body = encoder(self.registry)
        self._send_body(200, content_type, body)

    def _send_json(self, status_code: int, data: Dict[str, Any]) -> None:
        body = json.dumps(data, indent=2).encode("utf-8")
        self._send_body(status_code, "application/json", body)

    def _send_body(self, status_code: int, content_type: str, body: bytes) -> None:
        self.send_response(status_code)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_error_response(self) -> None:
        body = b"An error has occurred while serving the request.\n"
        try:
            self._send_body(500, "text/plain; charset=utf-8", body)
        except OSError as e:
            # Client went away or headers were already flushed
            logger.warning(f"Could not send error response: {e}")

    def log_message(self, format, *args):
        """Route access logging to the structured logger at DEBUG."""
        logger.debug(f"{self.address_string()} - {format % args}")


class ExporterServer:
    """
    Threaded HTTP server for the exporter.

    Usage:
        registry = CollectorRegistry()
        registry.register(collector)

        server = ExporterServer(registry, port=9001, collector=collector)
        server.serve_forever()          # blocking, or server.start()
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        host: str = "",
        port: int = 9001,
        metrics_path: str = "/metrics",
        collector=None,
    ):
        """
        Initialize exporter server.

        Args:
            registry: registry whose collectors are exposed on metrics_path
            host: bind address ("" binds all interfaces)
            port: HTTP port to listen on (0 picks an ephemeral port)
            metrics_path: path of the exposition endpoint
            collector: object with ``is_ready()`` / ``refresh_status()``
                       backing the /ready endpoint
        """
        if not metrics_path.startswith("/"):
            metrics_path = "/" + metrics_path

        self.registry = registry
        self.host = host
        self.port = port
        self.metrics_path = metrics_path
        self.collector = collector
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    def bind(self) -> None:
        """Create the listening socket. Raises OSError if the port is taken."""
        handler = type(
            'LMQExporterHandler',
            (ExporterHTTPHandler,),
            {
                'registry': self.registry,
                'metrics_path': self.metrics_path,
                'collector': self.collector,
                'start_time': time.time(),
            }
        )
        server_cls = ThreadingHTTPServer
        if ":" in self.host:
            server_cls = type(
                "IPv6ThreadingHTTPServer",
                (ThreadingHTTPServer,),
                {"address_family": socket.AF_INET6}
            )
        self._server = server_cls((self.host, self.port), handler)
        self._server.daemon_threads = True
        logger.info(
            f"Exporter listening on {self.url_host}:{self.server_address[1]}"
            f"  →  metrics at {self.metrics_path}"
        )

    def start(self) -> None:
        """Bind and serve in a daemon thread."""
        if self._server is None:
            self.bind()
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="exporter-http",
            daemon=True
        )
        self._thread.start()

    def serve_forever(self) -> None:
        """Bind (if needed) and serve in the calling thread until stop()."""
        if self._server is None:
            self.bind()
        self._server.serve_forever()

    def stop(self) -> None:
        """Stop serving and close the listening socket."""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            logger.info("Exporter server stopped")
        if self._thread:
            self._thread.join(timeout=5)

    @property
    def server_address(self) -> Tuple[str, int]:
        if self._server is None:
            return self.host, self.port
        return self._server.server_address[:2]

    @property
    def url_host(self) -> str:
        """Bind host as it appears in a URL (IPv6 bracketed)."""
        if not self.host:
            return "0.0.0.0"
        if ":" in self.host:
            return f"[{self.host}]"
        return self.host

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
