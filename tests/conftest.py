"""Shared fixtures for offlinecache tests."""

import pytest

from offlinecache.config import CacheConfig, Config, UpstreamConfig
from offlinecache.controller import OfflineController
from offlinecache.models import Request, Response
from offlinecache.network import Fetcher, NetworkError
from offlinecache.storage import MemoryPartitionStore
from offlinecache.sync import ClientRegistry

ORIGIN = "http://upstream.test"


class StubFetcher(Fetcher):
    """Fetcher answering from a URL -> Response map instead of the network.

    URLs without a route raise NetworkError, as does every URL while
    ``offline`` is set.
    """

    def __init__(self) -> None:
        super().__init__(UpstreamConfig(origin=ORIGIN))
        self.routes: dict[str, Response | Exception] = {}
        self.calls: list[Request] = []
        self.offline = False

    def add(self, path: str, status: int = 200, body: bytes = b"", headers: dict | None = None) -> str:
        url = self.resolve(path)
        self.routes[url] = Response(status=status, reason="", headers=headers or {}, body=body)
        return url

    def fail(self, path: str) -> str:
        url = self.resolve(path)
        self.routes[url] = NetworkError(f"GET {url} failed")
        return url

    def fetch(self, request: Request) -> Response:
        self.calls.append(request)
        if self.offline:
            raise NetworkError(f"{request.method} {request.url} failed: offline")
        result = self.routes.get(request.url)
        if result is None:
            raise NetworkError(f"{request.method} {request.url} failed: no route")
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fetcher() -> StubFetcher:
    return StubFetcher()


@pytest.fixture
def store() -> MemoryPartitionStore:
    return MemoryPartitionStore()


@pytest.fixture
def config() -> Config:
    """Configuration with a short route list and a test origin."""
    return Config(
        cache=CacheConfig(version="v2", routes=("/", "/dashboard", "/offline")),
        upstream=UpstreamConfig(origin=ORIGIN),
    )


@pytest.fixture
def registry() -> ClientRegistry:
    return ClientRegistry()


@pytest.fixture
def controller(
    config: Config,
    store: MemoryPartitionStore,
    fetcher: StubFetcher,
    registry: ClientRegistry,
) -> OfflineController:
    """Controller that is installed and activated, reporting offline connectivity."""
    ctrl = OfflineController(config, store, fetcher, registry, is_online=lambda: False)
    ctrl.on_activate()
    return ctrl


def page_request(path: str) -> Request:
    return Request(url=ORIGIN + path, destination="document", mode="navigate")


def asset_request(path: str, destination: str = "script") -> Request:
    return Request(url=ORIGIN + path, destination=destination, mode="no-cors")


def api_request(path: str, method: str = "GET", body: bytes | None = None) -> Request:
    return Request(url=ORIGIN + path, method=method, body=body, mode="cors")
