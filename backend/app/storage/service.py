"""Cache-or-recompute gate and fenced reconciliation of gallery storage counters."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from .aggregator import SizeAggregator, aggregate_both
from .exceptions import AggregationFailedError, GalleryNotFoundError
from .models import (
    CommitOutcome,
    CommitResult,
    FailurePolicy,
    GalleryStorageRecord,
    ReconciliationResult,
    StorageSnapshot,
)

logger = logging.getLogger("storage")

DEFAULT_CACHE_TTL_SECONDS = 300
DEFAULT_TOLERANCE_BYTES = 1024


class GalleryStorageRepository(Protocol):
    """Persistence operations required by the storage accounting service."""

    def get_record(self, gallery_id: str) -> Optional[GalleryStorageRecord]:
        ...

    def commit_recalculation(
        self,
        gallery_id: str,
        *,
        originals_bytes: int,
        finals_bytes: int,
        recalculated_at: datetime,
    ) -> Optional[GalleryStorageRecord]:
        ...


class StorageAccountingService:
    """Serves gallery storage usage from cache or from a fresh reconciliation."""

    def __init__(
        self,
        repository: GalleryStorageRepository,
        aggregator: SizeAggregator,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        tolerance_bytes: int = DEFAULT_TOLERANCE_BYTES,
    ) -> None:
        if cache_ttl_seconds < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")
        if tolerance_bytes < 0:
            raise ValueError("tolerance_bytes must be >= 0")
        self._repository = repository
        self._aggregator = aggregator
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cache_ttl_ms = cache_ttl_seconds * 1000
        self._tolerance_bytes = tolerance_bytes

    @property
    def cache_ttl_ms(self) -> int:
        return self._cache_ttl_ms

    def get_record(self, gallery_id: str) -> GalleryStorageRecord:
        record = self._repository.get_record(gallery_id)
        if record is None:
            raise GalleryNotFoundError(gallery_id)
        return record

    def get_storage(
        self,
        gallery_id: str,
        force_recalc: bool = False,
        *,
        on_failure: FailurePolicy = FailurePolicy.RAISE,
    ) -> StorageSnapshot:
        """Return storage usage, recomputing when forced or when the cache is stale."""

        record = self.get_record(gallery_id)
        return self.get_storage_for_record(record, force_recalc, on_failure=on_failure)

    def get_storage_for_record(
        self,
        record: GalleryStorageRecord,
        force_recalc: bool = False,
        *,
        on_failure: FailurePolicy = FailurePolicy.RAISE,
    ) -> StorageSnapshot:
        """Same as :meth:`get_storage` for callers that already hold the record."""

        cache_age_ms = record.cache_age_ms(self._clock())
        if not force_recalc and cache_age_ms is not None and cache_age_ms < self._cache_ttl_ms:
            logger.info(
                "Using cached storage values gallery=%s age_ms=%s originals=%s finals=%s",
                record.gallery_id,
                cache_age_ms,
                record.originals_bytes_used,
                record.finals_bytes_used,
            )
            return StorageSnapshot.from_record(record, cached=True, cache_age_ms=cache_age_ms)

        logger.info(
            "Recalculating storage gallery=%s force=%s age_ms=%s",
            record.gallery_id,
            force_recalc,
            cache_age_ms if cache_age_ms is not None else "never",
        )
        try:
            self.reconcile(
                record.gallery_id,
                observed_prior=record.last_bytes_used_recalculated_at,
            )
        except AggregationFailedError as exc:
            if on_failure != FailurePolicy.STALE_ON_FAILURE:
                raise
            logger.warning(
                "Serving stale storage values gallery=%s class=%s: %s",
                record.gallery_id,
                exc.image_class.value,
                exc.message,
            )
            return StorageSnapshot.from_record(
                record,
                cached=True,
                cache_age_ms=cache_age_ms,
                stale=True,
            )

        current = self.get_record(record.gallery_id)
        return StorageSnapshot.from_record(current, previous=record)

    def reconcile(
        self,
        gallery_id: str,
        *,
        observed_prior: Optional[datetime] = None,
    ) -> ReconciliationResult:
        """Recompute both image classes and commit them behind the timestamp fence.

        A losing commit whose totals disagree with the winner's by more than
        the tolerance is retried exactly once with a fresh aggregation.
        """

        originals, finals = aggregate_both(self._aggregator, gallery_id)
        logger.info(
            "Calculated storage sizes gallery=%s originals=%s finals=%s",
            gallery_id,
            originals,
            finals,
        )
        first = self.commit(gallery_id, originals, finals, observed_prior)
        if first.applied:
            return ReconciliationResult(
                gallery_id=gallery_id,
                originals_bytes=originals,
                finals_bytes=finals,
                record=first.record,
            )

        stored = first.record
        stored_total = stored.total_bytes_used if stored else 0
        difference = abs(stored_total - (originals + finals))
        if difference <= self._tolerance_bytes:
            logger.info(
                "Recalculation superseded with matching result gallery=%s ours=%s stored=%s difference=%s",
                gallery_id,
                originals + finals,
                stored_total,
                difference,
            )
            return ReconciliationResult(
                gallery_id=gallery_id,
                originals_bytes=originals,
                finals_bytes=finals,
                applied=False,
                record=stored,
            )

        logger.warning(
            "Recalculation superseded with mismatch, retrying gallery=%s ours=%s stored=%s difference=%s",
            gallery_id,
            originals + finals,
            stored_total,
            difference,
        )
        retry_originals, retry_finals = aggregate_both(self._aggregator, gallery_id)
        second = self.commit(
            gallery_id,
            retry_originals,
            retry_finals,
            stored.last_bytes_used_recalculated_at if stored else None,
        )
        if second.applied:
            logger.info(
                "Retry recalculation succeeded gallery=%s originals=%s finals=%s",
                gallery_id,
                retry_originals,
                retry_finals,
            )
        else:
            logger.warning(
                "Retry recalculation also superseded gallery=%s; keeping stored values",
                gallery_id,
            )
        return ReconciliationResult(
            gallery_id=gallery_id,
            originals_bytes=retry_originals,
            finals_bytes=retry_finals,
            attempts=2,
            retried=True,
            applied=second.applied,
            record=second.record,
        )

    def commit(
        self,
        gallery_id: str,
        originals_bytes: int,
        finals_bytes: int,
        observed_prior: Optional[datetime] = None,
    ) -> CommitResult:
        """Stamp a new timestamp and attempt the conditional counter write."""

        if originals_bytes < 0 or finals_bytes < 0:
            raise ValueError("byte counts must be >= 0")

        attempted_at = self._clock()
        updated = self._repository.commit_recalculation(
            gallery_id,
            originals_bytes=originals_bytes,
            finals_bytes=finals_bytes,
            recalculated_at=attempted_at,
        )
        if updated is not None:
            logger.info(
                "Committed gallery storage gallery=%s originals=%s finals=%s timestamp=%s previous=%s",
                gallery_id,
                originals_bytes,
                finals_bytes,
                attempted_at.isoformat(),
                observed_prior.isoformat() if observed_prior else None,
            )
            return CommitResult(outcome=CommitOutcome.APPLIED, attempted_at=attempted_at, record=updated)

        current = self.get_record(gallery_id)
        logger.info(
            "Commit superseded gallery=%s ours=%s stored=%s",
            gallery_id,
            attempted_at.isoformat(),
            current.last_bytes_used_recalculated_at.isoformat()
            if current.last_bytes_used_recalculated_at
            else None,
        )
        return CommitResult(outcome=CommitOutcome.SUPERSEDED, attempted_at=attempted_at, record=current)


__all__ = [
    "DEFAULT_CACHE_TTL_SECONDS",
    "DEFAULT_TOLERANCE_BYTES",
    "GalleryStorageRepository",
    "StorageAccountingService",
]
