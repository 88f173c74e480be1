"""Per-class read/write strategies run by the fetch interceptor.

- Navigation: cache-first, revalidated in the background when online;
  precached routes are always answered from the precache partition
- Static assets: cache-first, no revalidation (content-hashed per build)
- API calls: network-first with cache fallback and a JSON 503 when offline
- Other: network-first with cache fallback, nothing stored

Only 200 responses to GET requests are ever written to a partition.
"""

import logging
import threading
from collections.abc import Callable

from .config import CacheConfig
from .models import Request, RequestClass, Response
from .network import Fetcher, NetworkError
from .storage import PartitionStore, StorageError

logger = logging.getLogger(__name__)

OFFLINE_PAGE_BODY = "Offline - page not available"


class FetchStrategies:
    """Runs the strategy matching a request's class against network and cache."""

    def __init__(
        self,
        config: CacheConfig,
        store: PartitionStore,
        fetcher: Fetcher,
        is_online: Callable[[], bool],
    ) -> None:
        """Initialize the strategies.

        Args:
            config: Partition names and offline route.
            store: Partition store shared with the partition manager.
            fetcher: Network fetcher.
            is_online: Connectivity check run on the revalidation thread before
                refreshing a cached page.
        """
        self._config = config
        self._store = store
        self._fetcher = fetcher
        self._is_online = is_online
        self._background: set[threading.Thread] = set()
        self._background_lock = threading.Lock()

    def run(self, request_class: RequestClass, request: Request) -> Response:
        """Dispatch to the strategy for request_class.

        Raises:
            NetworkError: Only from the Other strategy, when network and cache both miss.
        """
        if request_class is RequestClass.NAVIGATION:
            return self.navigation(request)
        if request_class is RequestClass.STATIC_ASSET:
            return self.static_asset(request)
        if request_class is RequestClass.API_CALL:
            return self.api_call(request)
        return self.other(request)

    def navigation(self, request: Request) -> Response:
        """Cache-first page load.

        Lookups search every partition in creation order, so a route held in
        the precache partition is always answered from there; revalidation
        only refreshes pages-cache and never displaces the precached copy.
        The connectivity check runs on the revalidation thread, never on the
        response path.
        """
        cached = self._match(request)
        if cached is not None:
            logger.debug("Serving from cache: %s", request.path)
            self._spawn_revalidation(request)
            return cached

        try:
            response = self._fetcher.fetch(request)
        except NetworkError:
            logger.info("Offline and page not cached: %s", request.path)
            return self._offline_page()

        self._store_if_ok(self._config.pages_partition, request, response)
        return response

    def static_asset(self, request: Request) -> Response:
        cached = self._match(request)
        if cached is not None:
            return cached

        try:
            response = self._fetcher.fetch(request)
        except NetworkError:
            logger.info("Resource not available offline: %s", request.path)
            return Response(status=404, reason="Not Found")

        self._store_if_ok(self._config.static_partition, request, response)
        return response

    def api_call(self, request: Request) -> Response:
        try:
            response = self._fetcher.fetch(request)
        except NetworkError:
            cached = self._match(request, [self._config.api_partition])
            if cached is not None:
                logger.info("API offline, serving from cache: %s", request.path)
                return cached
            return Response.json_error(503, "Offline", reason="Service Unavailable")

        self._store_if_ok(self._config.api_partition, request, response)
        return response

    def other(self, request: Request) -> Response:
        try:
            return self._fetcher.fetch(request)
        except NetworkError:
            cached = self._match(request)
            if cached is not None:
                return cached
            raise

    def wait_for_background(self, timeout: float | None = None) -> None:
        """Join background revalidation threads started so far."""
        with self._background_lock:
            threads = list(self._background)
        for thread in threads:
            thread.join(timeout)

    @property
    def pending_background(self) -> int:
        with self._background_lock:
            return len(self._background)

    def _match(self, request: Request, names: list[str] | None = None) -> Response | None:
        if not request.is_cacheable:
            return None
        return self._store.match(request.cache_key, names)

    def _store_if_ok(self, partition: str, request: Request, response: Response) -> None:
        """Write a clone of response into partition if it is a 200 to a GET."""
        if not response.ok or not request.is_cacheable:
            return
        try:
            self._store.put(partition, request.cache_key, response.clone())
        except StorageError as e:
            # The response is still served; only the cache write is lost
            logger.warning("Failed to cache %s in %s: %s", request.path, partition, e)

    def _offline_page(self) -> Response:
        offline_key = self._fetcher.resolve(self._config.offline_route)
        cached = self._store.match(offline_key)
        if cached is not None:
            return cached
        return Response(
            status=503,
            reason="Service Unavailable",
            headers={"Content-Type": "text/plain; charset=utf-8"},
            body=OFFLINE_PAGE_BODY.encode("utf-8"),
        )

    def _spawn_revalidation(self, request: Request) -> None:
        """Refresh the pages partition without blocking the caller."""
        thread = threading.Thread(
            target=self._revalidate,
            args=(request,),
            name="revalidate",
            daemon=True,
        )
        with self._background_lock:
            self._background.add(thread)
        thread.start()

    def _revalidate(self, request: Request) -> None:
        try:
            if not self._is_online():
                return
            response = self._fetcher.fetch(request)
            if response.ok:
                self._store.put(self._config.pages_partition, request.cache_key, response.clone())
                logger.debug("Revalidated %s", request.path)
        except (NetworkError, StorageError) as e:
            # Outcome never affects the response already returned
            logger.debug("Background revalidation of %s failed: %s", request.path, e)
        finally:
            with self._background_lock:
                self._background.discard(threading.current_thread())
