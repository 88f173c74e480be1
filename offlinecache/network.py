"""Network access for the fetch interceptor."""

import http.cookiejar
import logging
import socket
import threading
import time
from urllib.parse import urljoin, urlparse

import requests

from .config import UpstreamConfig
from .models import Request, Response

logger = logging.getLogger(__name__)

# Headers that describe a single hop and must not be stored or replayed.
# Content-Encoding/Length are dropped too: requests decodes the body, and
# the proxy recomputes the length from the stored bytes.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-encoding",
        "content-length",
    }
)

USER_AGENT = "offlinecache/0.1"


class NetworkError(Exception):
    """Raised when a network fetch fails before a response is received."""

    pass


def _filter_headers(headers: dict[str, str]) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}


class Fetcher:
    """Fetches requests from the upstream origin with requests."""

    def __init__(self, config: UpstreamConfig, session: requests.Session | None = None) -> None:
        """Initialize the fetcher.

        Args:
            config: Upstream configuration (origin and timeout).
            session: Optional session, mostly for tests.
        """
        self._config = config
        if session is None:
            session = requests.Session()
            # One session serves every proxied client; upstream cookies
            # must only travel in the client's own Cookie header.
            session.cookies.set_policy(http.cookiejar.DefaultCookiePolicy(allowed_domains=[]))
        self._session = session

    def resolve(self, route: str) -> str:
        """Resolve a route path against the upstream origin."""
        return urljoin(self._config.origin + "/", route.lstrip("/"))

    def fetch(self, request: Request) -> Response:
        """Fetch a request and snapshot the full response.

        HTTP error statuses are returned, not raised; only transport
        failures (connection refused, DNS, timeout) raise.

        Raises:
            NetworkError: If no response could be obtained.
        """
        headers = _filter_headers(request.headers)
        headers.setdefault("User-Agent", USER_AGENT)
        try:
            resp = self._session.request(
                request.method,
                request.url,
                headers=headers,
                data=request.body,
                timeout=self._config.timeout,
                allow_redirects=False,
            )
            body = resp.content
        except requests.RequestException as e:
            raise NetworkError(f"{request.method} {request.url} failed: {e}") from e

        return Response(
            status=resp.status_code,
            reason=resp.reason or "",
            headers=_filter_headers(dict(resp.headers)),
            body=body,
        )

    def close(self) -> None:
        self._session.close()


class ConnectivityChecker:
    """Reports whether the upstream origin is currently reachable.

    Uses a TCP connection to the origin host, which can block for up to
    the connect timeout. Results are cached for a short window. Callers
    on a latency-sensitive path should call it off that path.
    """

    def __init__(self, config: UpstreamConfig) -> None:
        parsed = urlparse(config.origin)
        self._host = parsed.hostname or "localhost"
        self._port = parsed.port or (443 if parsed.scheme == "https" else 80)
        self._timeout = min(config.timeout, 3)
        self._cache_seconds = config.connectivity_cache_seconds
        self._lock = threading.Lock()
        self._last_check_time: float | None = None
        self._cached_result: bool | None = None

    def is_online(self) -> bool:
        with self._lock:
            if (
                self._last_check_time is not None
                and time.monotonic() - self._last_check_time <= self._cache_seconds
            ):
                return bool(self._cached_result)

        try:
            with socket.create_connection((self._host, self._port), timeout=self._timeout):
                result = True
        except (TimeoutError, OSError):
            result = False

        with self._lock:
            if result != self._cached_result:
                logger.info("Upstream %s:%d is %s", self._host, self._port, "online" if result else "offline")
            self._last_check_time = time.monotonic()
            self._cached_result = result
        return result

    def invalidate(self) -> None:
        with self._lock:
            self._last_check_time = None
