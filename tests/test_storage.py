"""Tests for the partition stores."""

from pathlib import Path

import pytest

from offlinecache.models import Response
from offlinecache.storage import (
    MemoryPartitionStore,
    SqlitePartitionStore,
    StorageError,
    open_store,
)


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path: Path):
    """Run each test against both store implementations."""
    if request.param == "memory":
        yield MemoryPartitionStore()
    else:
        store = SqlitePartitionStore(str(tmp_path / "partitions.db"))
        yield store
        store.close()


@pytest.fixture
def page() -> Response:
    return Response(status=200, reason="OK", headers={"Content-Type": "text/html"}, body=b"<h1>Pedidos</h1>")


class TestPartitionStore:
    """Behavior shared by every PartitionStore implementation."""

    def test_open_creates_empty_partition(self, any_store) -> None:
        """open() creates the partition with no entries."""
        any_store.open("offline-app-v2")

        assert any_store.has("offline-app-v2")
        assert any_store.count("offline-app-v2") == 0

    def test_open_is_idempotent(self, any_store) -> None:
        """Opening an existing partition keeps it and its entries."""
        any_store.put("pages-cache", "http://a/", Response(status=200))
        any_store.open("pages-cache")

        assert any_store.names() == ["pages-cache"]
        assert any_store.count("pages-cache") == 1

    def test_put_creates_partition_lazily(self, any_store, page: Response) -> None:
        """Writing to an unknown partition creates it."""
        any_store.put("static-cache", "http://a/_next/app.js", page)

        assert any_store.has("static-cache")
        assert any_store.get("static-cache", "http://a/_next/app.js") == page

    def test_put_overwrites_same_key(self, any_store, page: Response) -> None:
        """The last write for a key wins."""
        any_store.put("pages-cache", "http://a/", page)
        newer = Response(status=200, body=b"<h1>Novo</h1>")
        any_store.put("pages-cache", "http://a/", newer)

        assert any_store.count("pages-cache") == 1
        assert any_store.get("pages-cache", "http://a/").body == b"<h1>Novo</h1>"

    def test_get_missing_returns_none(self, any_store) -> None:
        """Unknown partitions and keys miss."""
        assert any_store.get("nope", "http://a/") is None
        any_store.open("pages-cache")
        assert any_store.get("pages-cache", "http://a/") is None

    def test_round_trip_preserves_snapshot(self, any_store, page: Response) -> None:
        """Status, reason, headers and body survive storage."""
        any_store.put("pages-cache", "http://a/", page)
        stored = any_store.get("pages-cache", "http://a/")

        assert stored.status == 200
        assert stored.reason == "OK"
        assert stored.headers == {"Content-Type": "text/html"}
        assert stored.body == b"<h1>Pedidos</h1>"

    def test_reads_return_independent_copies(self, any_store, page: Response) -> None:
        """Mutating a returned snapshot's headers does not alter the store."""
        any_store.put("pages-cache", "http://a/", page)
        first = any_store.get("pages-cache", "http://a/")
        first.headers["X-Tampered"] = "1"

        assert "X-Tampered" not in any_store.get("pages-cache", "http://a/").headers

    def test_names_in_creation_order(self, any_store) -> None:
        """Partitions are listed in the order they were created."""
        any_store.open("offline-app-v2")
        any_store.put("pages-cache", "k", Response(status=200))
        any_store.open("api-cache")

        assert any_store.names() == ["offline-app-v2", "pages-cache", "api-cache"]

    def test_delete(self, any_store) -> None:
        """delete() removes the partition and reports whether it existed."""
        any_store.put("offline-app-v1", "k", Response(status=200))

        assert any_store.delete("offline-app-v1") is True
        assert any_store.has("offline-app-v1") is False
        assert any_store.get("offline-app-v1", "k") is None
        assert any_store.delete("offline-app-v1") is False

    def test_match_searches_all_partitions_in_order(self, any_store) -> None:
        """match() returns the first hit in creation order."""
        any_store.put("offline-app-v2", "http://a/", Response(status=200, body=b"precache"))
        any_store.put("pages-cache", "http://a/", Response(status=200, body=b"pages"))

        assert any_store.match("http://a/").body == b"precache"

    def test_match_restricted_to_names(self, any_store) -> None:
        """match() can be limited to specific partitions."""
        any_store.put("pages-cache", "http://a/api/x", Response(status=200, body=b"pages"))

        assert any_store.match("http://a/api/x", ["api-cache"]) is None
        assert any_store.match("http://a/api/x", ["pages-cache"]).body == b"pages"

    def test_keys(self, any_store) -> None:
        """keys() lists the keys stored in a partition."""
        any_store.put("api-cache", "http://a/api/1", Response(status=200))
        any_store.put("api-cache", "http://a/api/2", Response(status=200))

        assert sorted(any_store.keys("api-cache")) == ["http://a/api/1", "http://a/api/2"]
        assert any_store.keys("missing") == []


class TestSqlitePartitionStore:
    """SQLite-specific behavior."""

    def test_entries_persist_across_reopen(self, tmp_path: Path) -> None:
        """Stored partitions survive closing and reopening the database."""
        db_path = str(tmp_path / "partitions.db")
        store = SqlitePartitionStore(db_path)
        store.put("offline-app-v2", "http://a/", Response(status=200, body=b"home"))
        store.close()

        reopened = SqlitePartitionStore(db_path)
        try:
            assert reopened.names() == ["offline-app-v2"]
            assert reopened.get("offline-app-v2", "http://a/").body == b"home"
        finally:
            reopened.close()

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        """Missing parent directories are created."""
        db_path = tmp_path / "nested" / "dir" / "partitions.db"
        store = SqlitePartitionStore(str(db_path))
        store.close()

        assert db_path.exists()

    def test_operations_after_close_raise_storage_error(self, tmp_path: Path) -> None:
        """sqlite errors are wrapped in StorageError."""
        store = SqlitePartitionStore(str(tmp_path / "partitions.db"))
        store.close()

        with pytest.raises(StorageError):
            store.names()


class TestOpenStore:
    """Tests for open_store function."""

    def test_memory_path(self) -> None:
        """':memory:' selects the in-memory store."""
        assert isinstance(open_store(":memory:"), MemoryPartitionStore)

    def test_file_path(self, tmp_path: Path) -> None:
        """Any other path opens a SQLite store."""
        store = open_store(str(tmp_path / "p.db"))
        try:
            assert isinstance(store, SqlitePartitionStore)
        finally:
            store.close()
