from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import psycopg2
import pytest

from backend.app.storage import ImageClass, StorageBackendError
from backend.app.storage.repository import PostgresGalleryStorageRepository, PostgresImageIndex

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, rows: List[Dict[str, Any]], error: Optional[Exception] = None) -> None:
        self._rows = rows
        self._error = error
        self.executed: List[Any] = []
        self.closed = False

    def execute(self, query, params=None) -> None:
        if self._error is not None:
            raise self._error
        self.executed.append(params)

    def fetchone(self) -> Optional[Dict[str, Any]]:
        return self._rows[0] if self._rows else None

    def fetchall(self) -> List[Dict[str, Any]]:
        return list(self._rows)

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, cursor: FakeCursor) -> None:
        self._cursor = cursor

    def cursor(self, cursor_factory=None) -> FakeCursor:
        return self._cursor


def _gallery_row(**overrides) -> Dict[str, Any]:
    row = {
        "gallery_id": "g1",
        "owner_id": 7,
        "plan": "1GB-1m",
        "selection_enabled": None,
        "originals_bytes_used": 100,
        "finals_bytes_used": 50,
        "bytes_used": 150,
        "originals_limit_bytes": 1024,
        "finals_limit_bytes": 1024,
        "storage_limit_bytes": 2048,
        "last_bytes_used_recalculated_at": NOW,
    }
    row.update(overrides)
    return row


def test_get_record_maps_row():
    cursor = FakeCursor([_gallery_row()])
    repository = PostgresGalleryStorageRepository(conn=FakeConnection(cursor))

    record = repository.get_record("g1")

    assert record.owner_id == "7"
    assert record.selection_enabled is True
    assert record.total_bytes_used == 150
    assert cursor.executed == [("g1",)]
    assert cursor.closed is True


def test_get_record_returns_none_for_missing_gallery():
    repository = PostgresGalleryStorageRepository(conn=FakeConnection(FakeCursor([])))

    assert repository.get_record("missing") is None


def test_commit_passes_counters_and_timestamp():
    cursor = FakeCursor([_gallery_row(originals_bytes_used=10, finals_bytes_used=5, bytes_used=15)])
    repository = PostgresGalleryStorageRepository(conn=FakeConnection(cursor))

    record = repository.commit_recalculation("g1", originals_bytes=10, finals_bytes=5, recalculated_at=NOW)

    assert record.bytes_used == 15
    params = cursor.executed[0]
    assert params["total"] == 15
    assert params["recalculated_at"] == NOW


def test_rejected_commit_returns_none():
    repository = PostgresGalleryStorageRepository(conn=FakeConnection(FakeCursor([])))

    assert repository.commit_recalculation("g1", originals_bytes=1, finals_bytes=1, recalculated_at=NOW) is None


def test_index_page_reports_last_key_only_when_full():
    rows = [{"image_key": "a", "size": 3}, {"image_key": "b", "size": None}]
    cursor = FakeCursor(rows)
    index = PostgresImageIndex(conn=FakeConnection(cursor))

    full = index.query_sizes("g1", ImageClass.FINAL, start_after=None, page_size=2)
    partial = index.query_sizes("g1", ImageClass.FINAL, start_after="b", page_size=5)

    assert full.sizes == (3, 0)
    assert full.last_key == "b"
    assert partial.last_key is None
    assert cursor.executed[0]["type"] == "final"
    assert cursor.executed[1]["start_after"] == "b"


def test_index_errors_become_backend_errors():
    cursor = FakeCursor([], error=psycopg2.OperationalError("server closed the connection"))
    index = PostgresImageIndex(conn=FakeConnection(cursor))

    with pytest.raises(StorageBackendError):
        index.query_sizes("g1", ImageClass.ORIGINAL, start_after=None, page_size=10)
