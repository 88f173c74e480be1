"""Partition stores: named, durable key -> response snapshot maps."""

import json
import sqlite3
import threading
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from .models import Response


class StorageError(Exception):
    """Raised when a partition store operation fails."""

    pass


class PartitionStore(Protocol):
    """Storage interface injected into the controller.

    Every read returns a fresh clone and every write stores one, so a
    snapshot is never shared between the store and its callers.
    """

    def open(self, name: str) -> None:
        """Create the partition if it does not exist."""
        ...

    def names(self) -> list[str]:
        """Return partition names in creation order."""
        ...

    def has(self, name: str) -> bool:
        ...

    def delete(self, name: str) -> bool:
        """Delete a partition and its entries. Returns False if it was absent."""
        ...

    def put(self, name: str, key: str, response: Response) -> None:
        """Store a response, creating the partition lazily and overwriting the key."""
        ...

    def get(self, name: str, key: str) -> Response | None:
        ...

    def match(self, key: str, names: Iterable[str] | None = None) -> Response | None:
        """Return the first hit across the given partitions (or all, in creation order)."""
        ...

    def keys(self, name: str) -> list[str]:
        ...

    def count(self, name: str) -> int:
        ...


class MemoryPartitionStore:
    """Thread-safe in-memory partition store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # dicts keep insertion order, which doubles as creation order
        self._partitions: dict[str, dict[str, Response]] = {}

    def open(self, name: str) -> None:
        with self._lock:
            self._partitions.setdefault(name, {})

    def names(self) -> list[str]:
        with self._lock:
            return list(self._partitions)

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._partitions

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._partitions.pop(name, None) is not None

    def put(self, name: str, key: str, response: Response) -> None:
        with self._lock:
            self._partitions.setdefault(name, {})[key] = response.clone()

    def get(self, name: str, key: str) -> Response | None:
        with self._lock:
            entry = self._partitions.get(name, {}).get(key)
        return entry.clone() if entry is not None else None

    def match(self, key: str, names: Iterable[str] | None = None) -> Response | None:
        with self._lock:
            search = list(self._partitions) if names is None else list(names)
            for name in search:
                entry = self._partitions.get(name, {}).get(key)
                if entry is not None:
                    return entry.clone()
        return None

    def keys(self, name: str) -> list[str]:
        with self._lock:
            return list(self._partitions.get(name, {}))

    def count(self, name: str) -> int:
        with self._lock:
            return len(self._partitions.get(name, {}))


class SqlitePartitionStore:
    """Durable partition store backed by SQLite.

    SQLite allows concurrent reads but only one writer at a time, so all
    access goes through a single lock shared by proxy handler threads and
    background revalidation threads.
    """

    def __init__(self, db_path: str) -> None:
        """Open (or create) the store at db_path.

        Raises:
            StorageError: If the database cannot be initialized.
        """
        self._lock = threading.Lock()
        self._conn = _init_db(db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def open(self, name: str) -> None:
        try:
            with self._lock:
                self._ensure_partition(name)
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open partition '{name}': {e}")

    def names(self) -> list[str]:
        try:
            with self._lock:
                rows = self._conn.execute("SELECT name FROM partitions ORDER BY id").fetchall()
            return [row["name"] for row in rows]
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list partitions: {e}")

    def has(self, name: str) -> bool:
        try:
            with self._lock:
                row = self._conn.execute("SELECT 1 FROM partitions WHERE name = ?", (name,)).fetchone()
            return row is not None
        except sqlite3.Error as e:
            raise StorageError(f"Failed to look up partition '{name}': {e}")

    def delete(self, name: str) -> bool:
        try:
            with self._lock:
                self._conn.execute("DELETE FROM entries WHERE partition = ?", (name,))
                cursor = self._conn.execute("DELETE FROM partitions WHERE name = ?", (name,))
                self._conn.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete partition '{name}': {e}")

    def put(self, name: str, key: str, response: Response) -> None:
        try:
            with self._lock:
                self._ensure_partition(name)
                self._conn.execute(
                    """
                    INSERT OR REPLACE INTO entries
                    (partition, key, status, reason, headers, body, stored_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        name,
                        key,
                        response.status,
                        response.reason,
                        json.dumps(response.headers),
                        bytes(response.body),
                        time.time(),
                    ),
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to store '{key}' in partition '{name}': {e}")

    def get(self, name: str, key: str) -> Response | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT status, reason, headers, body FROM entries WHERE partition = ? AND key = ?",
                    (name, key),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read '{key}' from partition '{name}': {e}")
        return _row_to_response(row) if row is not None else None

    def match(self, key: str, names: Iterable[str] | None = None) -> Response | None:
        search = self.names() if names is None else list(names)
        for name in search:
            response = self.get(name, key)
            if response is not None:
                return response
        return None

    def keys(self, name: str) -> list[str]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT key FROM entries WHERE partition = ? ORDER BY stored_at", (name,)
                ).fetchall()
            return [row["key"] for row in rows]
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list keys of partition '{name}': {e}")

    def count(self, name: str) -> int:
        try:
            with self._lock:
                row = self._conn.execute("SELECT COUNT(*) FROM entries WHERE partition = ?", (name,)).fetchone()
            return row[0]
        except sqlite3.Error as e:
            raise StorageError(f"Failed to count partition '{name}': {e}")

    def _ensure_partition(self, name: str) -> None:
        """Insert the partition row if missing. Caller must hold the lock."""
        self._conn.execute(
            "INSERT OR IGNORE INTO partitions (name, created_at) VALUES (?, ?)",
            (name, time.time()),
        )


def _row_to_response(row: sqlite3.Row) -> Response:
    """Convert a database row to a Response snapshot."""
    return Response(
        status=row["status"],
        reason=row["reason"] or "",
        headers=json.loads(row["headers"]),
        body=bytes(row["body"]),
    )


def _init_db(db_path: str) -> sqlite3.Connection:
    """Initialize the database and create tables if they don't exist.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        Database connection with WAL mode enabled.

    Raises:
        StorageError: If database initialization fails.
    """
    try:
        parent_dir = Path(db_path).parent
        if not parent_dir.exists():
            parent_dir.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row

        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS partitions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                created_at REAL NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                partition TEXT NOT NULL,
                key TEXT NOT NULL,
                status INTEGER NOT NULL,
                reason TEXT,
                headers TEXT NOT NULL,
                body BLOB NOT NULL,
                stored_at REAL NOT NULL,
                PRIMARY KEY (partition, key)
            )
        """)

        conn.commit()
        return conn

    except sqlite3.Error as e:
        raise StorageError(f"Failed to initialize partition store: {e}")
    except OSError as e:
        raise StorageError(f"Failed to create storage directory: {e}")


def open_store(path: str) -> PartitionStore:
    """Open the store configured by path (":memory:" selects the in-memory store)."""
    if path == ":memory:":
        return MemoryPartitionStore()
    return SqlitePartitionStore(str(Path(path).expanduser()))
