"""Reverse proxy that binds HTTP traffic to the offline controller."""

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from .config import ProxyConfig
from .controller import OfflineController
from .models import Request, Response
from .network import HOP_BY_HOP_HEADERS, Fetcher, NetworkError

logger = logging.getLogger(__name__)

CONTROL_PREFIX = "/__offline/"

# Largest request body accepted for forwarding or control calls.
MAX_REQUEST_BODY = 10 * 1024 * 1024


class ProxyError(Exception):
    """Raised when the proxy server cannot be started."""

    pass


class RequestTooLarge(Exception):
    """Raised when a request body exceeds MAX_REQUEST_BODY."""

    pass


class ProxyHandler(BaseHTTPRequestHandler):
    """Turns each HTTP request into a controller fetch or control call."""

    # Class-level references set by factory
    controller: OfflineController | None = None
    fetcher: Fetcher | None = None
    origin: str = ""

    def log_message(self, format: str, *args: Any) -> None:
        """Override to use Python logging instead of stderr."""
        logger.debug("Proxy %s - %s", self.address_string(), format % args)

    def do_GET(self) -> None:
        self._dispatch()

    def do_HEAD(self) -> None:
        self._dispatch()

    def do_POST(self) -> None:
        self._dispatch()

    def do_PUT(self) -> None:
        self._dispatch()

    def do_PATCH(self) -> None:
        self._dispatch()

    def do_DELETE(self) -> None:
        self._dispatch()

    def _dispatch(self) -> None:
        try:
            if self.path.startswith(CONTROL_PREFIX):
                self._handle_control()
            else:
                self._handle_proxy()
        except RequestTooLarge as e:
            logger.warning("Rejected request to %s: %s", self.path, e)
            self.close_connection = True
            self._send_error_json(413, "Request body too large")
        except Exception as e:
            logger.exception("Error handling request: %s", e)
            self._send_error_json(500, "Internal server error")

    def _read_body(self) -> bytes | None:
        length = int(self.headers.get("Content-Length") or 0)
        if length <= 0:
            return None
        if length > MAX_REQUEST_BODY:
            raise RequestTooLarge(f"{length} bytes exceeds {MAX_REQUEST_BODY}")
        return self.rfile.read(length)

    def _build_request(self) -> Request:
        # Absolute-form targets (proxy style) keep their own scheme and host
        url = self.path if "://" in self.path else self.origin + self.path
        headers = {k: v for k, v in self.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}
        headers.pop("Host", None)
        return Request(
            url=url,
            method=self.command,
            headers=headers,
            body=self._read_body(),
            destination=self.headers.get("Sec-Fetch-Dest", ""),
            mode=self.headers.get("Sec-Fetch-Mode", ""),
        )

    def _handle_proxy(self) -> None:
        request = self._build_request()
        try:
            response = self.controller.on_fetch(request)
            if response is None:
                response = self.fetcher.fetch(request)
        except NetworkError as e:
            logger.warning("Upstream unavailable for %s: %s", request.path, e)
            self._send_error_json(502, "Upstream unavailable")
            return
        self._send_response(response)

    def _send_response(self, response: Response) -> None:
        body = response.body
        self.send_response(response.status, response.reason or None)
        for name, value in response.headers.items():
            if name.lower() not in HOP_BY_HOP_HEADERS:
                self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _send_json(self, code: int, data: dict[str, Any]) -> None:
        """Send a JSON response with the given status code."""
        body = json.dumps(data, indent=2).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _send_error_json(self, code: int, message: str) -> None:
        """Send a JSON error response."""
        self._send_json(code, {"error": message})

    def _handle_control(self) -> None:
        """Route /__offline/ control endpoints."""
        parts = self.path[len(CONTROL_PREFIX):].split("?", 1)[0].strip("/").split("/")

        if parts == ["health"] and self.command == "GET":
            self._handle_health()
        elif parts == ["sync"] and self.command == "POST":
            self._handle_sync()
        elif parts == ["clients"] and self.command == "POST":
            client = self.controller.registry.register()
            self._send_json(201, {"id": client.id, "controlled": client.controlled})
        elif len(parts) == 3 and parts[0] == "clients" and parts[2] == "messages" and self.command == "GET":
            self._handle_messages(parts[1])
        elif len(parts) == 2 and parts[0] == "clients" and self.command == "DELETE":
            if self.controller.registry.unregister(parts[1]):
                self._send_json(200, {"success": True})
            else:
                self._send_error_json(404, f"Client '{parts[1]}' not found")
        else:
            self._send_error_json(404, "Not found")

    def _handle_health(self) -> None:
        store = self.controller.store
        self._send_json(
            200,
            {
                "status": "ok",
                "active": self.controller.is_active,
                "version": self.controller.config.cache.version,
                "partitions": {name: store.count(name) for name in store.names()},
                "clients": len(self.controller.registry.match_all()),
            },
        )

    def _handle_sync(self) -> None:
        try:
            payload = json.loads(self._read_body() or b"{}")
        except (ValueError, UnicodeDecodeError):
            self._send_error_json(400, "Invalid JSON body")
            return
        tag = payload.get("tag") if isinstance(payload, dict) else None
        if not isinstance(tag, str) or not tag:
            self._send_error_json(400, "Field 'tag' is required")
            return
        self.controller.on_sync(tag)
        self._send_json(200, {"success": True, "tag": tag})

    def _handle_messages(self, client_id: str) -> None:
        client = self.controller.registry.get(client_id)
        if client is None:
            self._send_error_json(404, f"Client '{client_id}' not found")
            return
        self._send_json(200, {"id": client.id, "messages": client.drain()})


class _ProxyHTTPServer(ThreadingHTTPServer):
    """Threaded server that refuses to share its port with another listener."""

    daemon_threads = True
    allow_reuse_port = False


def _create_handler_class(controller: OfflineController, fetcher: Fetcher, origin: str) -> type:
    """Create a handler class with the controller and fetcher bound."""

    class BoundProxyHandler(ProxyHandler):
        pass

    BoundProxyHandler.controller = controller
    BoundProxyHandler.fetcher = fetcher
    BoundProxyHandler.origin = origin.rstrip("/")
    return BoundProxyHandler


class ProxyServer:
    """Threaded HTTP reverse proxy in front of the upstream origin."""

    def __init__(self, config: ProxyConfig, controller: OfflineController, fetcher: Fetcher, origin: str) -> None:
        """Initialize the proxy server.

        Args:
            config: Proxy configuration.
            controller: Activated offline controller.
            fetcher: Fetcher used for pass-through requests.
            origin: Upstream origin that request paths are resolved against.
        """
        self.config = config
        self.controller = controller
        self.fetcher = fetcher
        self.origin = origin
        self._server: _ProxyHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._shutdown_event = threading.Event()

    def start(self) -> None:
        """Start the proxy server in a background thread.

        Raises:
            ProxyError: If the server fails to start.
        """
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Proxy server is already running")
            return

        try:
            handler_class = _create_handler_class(self.controller, self.fetcher, self.origin)
            self._server = _ProxyHTTPServer(("", self.config.port), handler_class)
            self._server.timeout = 1.0  # Allow periodic shutdown checks

            self._shutdown_event.clear()
            self._thread = threading.Thread(
                target=self._serve_forever,
                name="proxy-server",
                daemon=True,
            )
            self._thread.start()

            logger.info("Proxy server started on port %d -> %s", self.config.port, self.origin)

        except OSError as e:
            if e.errno == 98 or e.errno == 48:  # EADDRINUSE (Linux=98, macOS=48)
                raise ProxyError(
                    f"Port {self.config.port} is already in use. "
                    f"Another process may be using this port, or offlinecache is already running."
                )
            elif e.errno == 13:  # EACCES - Permission denied
                raise ProxyError(
                    f"Permission denied for port {self.config.port}. "
                    f"Ports below 1024 require root privileges. "
                    f"Use a port >= 1024 or run with elevated permissions."
                )
            else:
                raise ProxyError(f"Failed to start proxy server on port {self.config.port}: {e}")

    def _serve_forever(self) -> None:
        """Server loop that checks for shutdown."""
        while not self._shutdown_event.is_set():
            if self._server:
                self._server.handle_request()

    def stop(self) -> None:
        """Stop the proxy server gracefully."""
        if self._thread is None:
            return

        logger.info("Stopping proxy server...")
        self._shutdown_event.set()

        if self._thread.is_alive():
            self._thread.join(timeout=5.0)

        if self._server:
            self._server.server_close()

        self._server = None
        self._thread = None
        logger.info("Proxy server stopped")

    @property
    def is_running(self) -> bool:
        """Check if the server is running."""
        return self._thread is not None and self._thread.is_alive()
