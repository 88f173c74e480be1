"""Cache partition manager: versioned precache and stale partition eviction."""

import logging
from dataclasses import dataclass, field

from .config import CacheConfig
from .models import Request
from .network import Fetcher, NetworkError
from .storage import PartitionStore

logger = logging.getLogger(__name__)


@dataclass
class PrecacheOutcome:
    """Result of an install-time precache run.

    Precaching is best-effort: partial success is success, so ``ok`` is
    always True and failed routes are only reported.
    """

    partition: str
    stored: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return True


class PartitionManager:
    """Owns the precache partition and evicts stale versions of it."""

    def __init__(self, config: CacheConfig, store: PartitionStore, fetcher: Fetcher | None = None) -> None:
        """Initialize the manager.

        Args:
            config: Cache namespace, version and partition names.
            store: Partition store.
            fetcher: Network fetcher; only needed for ensure_precache, so
                eviction and clearing can run without one.
        """
        self._config = config
        self._store = store
        self._fetcher = fetcher

    def precache_name(self, version: str | None = None) -> str:
        """Name of the precache partition for version (default: current)."""
        return f"{self._config.namespace}{version if version is not None else self._config.version}"

    def ensure_precache(self, routes: list[str] | tuple[str, ...]) -> PrecacheOutcome:
        """Fetch and store every route into the versioned precache partition.

        A route that cannot be fetched, or answers with anything but 200,
        is logged and skipped; the remaining routes are still precached.

        Args:
            routes: Page paths to precache, in order.

        Returns:
            PrecacheOutcome listing stored and failed routes.

        Raises:
            RuntimeError: If the manager was built without a fetcher.
        """
        if self._fetcher is None:
            raise RuntimeError("Precaching requires a fetcher")
        name = self.precache_name()
        self._store.open(name)
        outcome = PrecacheOutcome(partition=name)
        logger.info("Precaching %d routes into %s", len(routes), name)

        for route in routes:
            request = Request(url=self._fetcher.resolve(route), destination="document", mode="navigate")
            try:
                response = self._fetcher.fetch(request)
            except NetworkError as e:
                logger.warning("Failed to precache %s: %s", route, e)
                outcome.failed.append(route)
                continue

            if not response.ok:
                logger.warning("Failed to precache %s: HTTP %d", route, response.status)
                outcome.failed.append(route)
                continue

            self._store.put(name, request.cache_key, response)
            outcome.stored.append(route)

        logger.info("Precached %d/%d routes", len(outcome.stored), len(routes))
        return outcome

    def evict_stale(self, current_version: str) -> list[str]:
        """Delete every namespaced partition that is not the current version.

        Returns:
            Names of the deleted partitions (empty when nothing is stale).
        """
        current = self.precache_name(current_version)
        deleted = []
        for name in self._store.names():
            if name.startswith(self._config.namespace) and name != current:
                if self._store.delete(name):
                    logger.info("Removed stale cache partition: %s", name)
                    deleted.append(name)
        return deleted

    def clear_all(self) -> int:
        """Delete every partition, precache and runtime alike."""
        deleted = 0
        for name in self._store.names():
            if self._store.delete(name):
                deleted += 1
        logger.info("Removed %d cache partitions", deleted)
        return deleted
