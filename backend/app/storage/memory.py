"""In-memory storage record repository suitable for tests and local development."""
from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Dict, List, Optional

from .models import GalleryStorageRecord


class InMemoryGalleryStorageRepository:
    """Applies the same timestamp-fenced conditional write as the SQL repository."""

    def __init__(self) -> None:
        self._records: Dict[str, GalleryStorageRecord] = {}
        self._lock = Lock()
        self.commit_attempts: List[datetime] = []

    def add(self, record: GalleryStorageRecord) -> None:
        with self._lock:
            self._records[record.gallery_id] = record

    def get_record(self, gallery_id: str) -> Optional[GalleryStorageRecord]:
        with self._lock:
            return self._records.get(gallery_id)

    def commit_recalculation(
        self,
        gallery_id: str,
        *,
        originals_bytes: int,
        finals_bytes: int,
        recalculated_at: datetime,
    ) -> Optional[GalleryStorageRecord]:
        with self._lock:
            self.commit_attempts.append(recalculated_at)
            record = self._records.get(gallery_id)
            if record is None:
                return None
            stored_at = record.last_bytes_used_recalculated_at
            if stored_at is not None and not stored_at < recalculated_at:
                return None
            updated = record.model_copy(
                update={
                    "originals_bytes_used": originals_bytes,
                    "finals_bytes_used": finals_bytes,
                    "bytes_used": originals_bytes + finals_bytes,
                    "last_bytes_used_recalculated_at": recalculated_at,
                }
            )
            self._records[gallery_id] = updated
            return updated

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self.commit_attempts.clear()


__all__ = ["InMemoryGalleryStorageRepository"]
