"""Offline cache controller exposing the install/activate/fetch/sync lifecycle."""

import logging
import threading
from collections.abc import Callable

from .classifier import classify, is_excluded
from .config import Config
from .models import Request, Response
from .network import Fetcher
from .partitions import PartitionManager, PrecacheOutcome
from .storage import PartitionStore
from .strategies import FetchStrategies
from .sync import ClientRegistry, SyncCoordinator

logger = logging.getLogger(__name__)


class OfflineController:
    """Cache-and-network-fallback controller.

    The host binding adapts its own events to the four lifecycle methods.
    Until on_activate() has evicted stale partitions and claimed clients,
    on_fetch() declines every request so the host's default applies.
    """

    def __init__(
        self,
        config: Config,
        store: PartitionStore,
        fetcher: Fetcher,
        registry: ClientRegistry | None = None,
        is_online: Callable[[], bool] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Application configuration.
            store: Partition store (durable or in-memory).
            fetcher: Network fetcher for the upstream origin.
            registry: Connected UI clients; a fresh registry when omitted.
            is_online: Connectivity check; assumes online when omitted.
        """
        self.config = config
        self.store = store
        self.registry = registry or ClientRegistry()
        self.partitions = PartitionManager(config.cache, store, fetcher)
        self.strategies = FetchStrategies(config.cache, store, fetcher, is_online or (lambda: True))
        self.sync = SyncCoordinator(config.sync, self.registry)
        self.skip_waiting = False
        self._active = threading.Event()

    @property
    def is_active(self) -> bool:
        return self._active.is_set()

    def on_install(self) -> PrecacheOutcome:
        """Populate the precache partition and request immediate activation."""
        logger.info("Installing cache version %s", self.config.cache.version)
        outcome = self.partitions.ensure_precache(self.config.cache.routes)
        self.skip_waiting = True
        return outcome

    def on_activate(self) -> list[str]:
        """Evict stale partitions, then claim all open clients.

        Returns:
            Names of the evicted partitions.
        """
        deleted = self.partitions.evict_stale(self.config.cache.version)
        claimed = self.registry.claim_all()
        self._active.set()
        logger.info("Activated cache version %s (claimed %d client(s))", self.config.cache.version, claimed)
        return deleted

    def on_fetch(self, request: Request) -> Response | None:
        """Serve an intercepted request.

        Returns:
            The response, or None when the request is not handled and must
            proceed via the host's default handling.

        Raises:
            NetworkError: From the Other strategy when network and cache both miss.
        """
        if is_excluded(request, self.config.classifier):
            return None
        if not self.is_active:
            return None

        request_class = classify(request, self.config.classifier)
        return self.strategies.run(request_class, request)

    def on_sync(self, tag: str) -> None:
        self.sync.on_sync(tag)

    def wait_for_background(self, timeout: float | None = None) -> None:
        """Wait for detached revalidation fetches to finish."""
        self.strategies.wait_for_background(timeout)
