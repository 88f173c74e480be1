"""Connected UI clients and the background sync coordinator."""

import logging
import threading
import uuid
from typing import Any

from .config import SyncConfig
from .models import SyncSignal

logger = logging.getLogger(__name__)


class Client:
    """A connected UI client with a message inbox."""

    def __init__(self, client_id: str) -> None:
        self.id = client_id
        self.controlled = False
        self._lock = threading.Lock()
        self._inbox: list[dict[str, Any]] = []

    def post_message(self, message: dict[str, Any]) -> None:
        with self._lock:
            self._inbox.append(dict(message))

    def drain(self) -> list[dict[str, Any]]:
        """Return all pending messages and empty the inbox."""
        with self._lock:
            messages, self._inbox = self._inbox, []
        return messages


class ClientRegistry:
    """Thread-safe registry of connected UI clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: dict[str, Client] = {}

    def register(self, client_id: str | None = None) -> Client:
        """Register a client, generating an id when none is given."""
        client = Client(client_id or uuid.uuid4().hex)
        with self._lock:
            self._clients[client.id] = client
        logger.debug("Client connected: %s", client.id)
        return client

    def unregister(self, client_id: str) -> bool:
        with self._lock:
            removed = self._clients.pop(client_id, None) is not None
        if removed:
            logger.debug("Client disconnected: %s", client_id)
        return removed

    def get(self, client_id: str) -> Client | None:
        with self._lock:
            return self._clients.get(client_id)

    def match_all(self) -> list[Client]:
        with self._lock:
            return list(self._clients.values())

    def claim_all(self) -> int:
        """Take control of every connected client. Returns the number claimed."""
        clients = self.match_all()
        for client in clients:
            client.controlled = True
        return len(clients)


class SyncCoordinator:
    """Broadcasts a resume-pending-writes notice when connectivity returns.

    Delivery is at most once: clients connected at the moment of the signal
    get one message each, nothing is queued for later clients, and no
    acknowledgement is tracked.
    """

    def __init__(self, config: SyncConfig, registry: ClientRegistry) -> None:
        self._config = config
        self._registry = registry

    def on_sync(self, tag: str) -> None:
        """Handle a background sync signal.

        Never raises: a failed notification must not fail the sync event,
        and one client failing does not stop delivery to the others.
        """
        signal = SyncSignal(tag=tag)
        logger.info("Background sync: %s", signal.tag)
        if signal.tag != self._config.tag:
            logger.debug("Ignoring unknown sync tag: %s", signal.tag)
            return

        try:
            clients = self._registry.match_all()
        except Exception as e:
            logger.error("Sync notification failed: %s", e)
            return

        message = {"type": self._config.message_type, "message": self._config.message}
        delivered = 0
        for client in clients:
            try:
                client.post_message(message)
                delivered += 1
            except Exception as e:
                logger.error("Sync notification to client %s failed: %s", client.id, e)
        logger.info("Notified %d of %d client(s) to resume pending writes", delivered, len(clients))
