"""Data models for intercepted requests and cached response snapshots."""

import json
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urldefrag, urlparse


class RequestClass(Enum):
    """Routing class assigned to every intercepted request."""

    NAVIGATION = "navigation"
    STATIC_ASSET = "static_asset"
    API_CALL = "api_call"
    OTHER = "other"


@dataclass(frozen=True)
class Request:
    """An intercepted network request.

    Attributes:
        url: Absolute URL of the request (upstream origin + path).
        method: HTTP method, upper case.
        headers: Request headers forwarded to the network.
        body: Request body, or None for bodiless requests.
        destination: Fetch destination ("document", "style", "script", "image", ...).
        mode: Fetch mode ("navigate", "cors", "no-cors", "same-origin", ...).
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    destination: str = ""
    mode: str = ""

    @property
    def scheme(self) -> str:
        return urlparse(self.url).scheme

    @property
    def path(self) -> str:
        return urlparse(self.url).path or "/"

    @property
    def cache_key(self) -> str:
        """Key used to store and look up this request in a partition."""
        return urldefrag(self.url)[0]

    @property
    def is_cacheable(self) -> bool:
        """Only GET requests are stored in or matched from partitions."""
        return self.method.upper() == "GET"


@dataclass(frozen=True)
class Response:
    """Immutable snapshot of an HTTP response.

    Attributes:
        status: HTTP status code.
        reason: HTTP reason phrase.
        headers: Response headers.
        body: Full response body.
    """

    status: int
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        """Whether this response may be written into a partition."""
        return self.status == 200

    def clone(self) -> "Response":
        """Return an independent copy of this snapshot."""
        return Response(
            status=self.status,
            reason=self.reason,
            headers=dict(self.headers),
            body=bytes(self.body),
        )

    @classmethod
    def json_error(cls, status: int, message: str, reason: str = "") -> "Response":
        """Build a synthesized JSON error response like ``{"error": message}``."""
        return cls(
            status=status,
            reason=reason,
            headers={"Content-Type": "application/json"},
            body=json.dumps({"error": message}).encode("utf-8"),
        )


@dataclass(frozen=True)
class SyncSignal:
    """Ephemeral reconnection signal raised by the host."""

    tag: str
