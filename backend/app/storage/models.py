"""Domain models for gallery storage accounting."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_BYTES_PER_MEGABYTE = 1024 * 1024


def format_megabytes(value: int) -> str:
    """Render a byte count as megabytes with two decimal places."""

    return f"{(value or 0) / _BYTES_PER_MEGABYTE:.2f}"


class ImageClass(str, Enum):
    """Image classes tracked by the storage counters."""

    ORIGINAL = "original"
    FINAL = "final"


class CommitOutcome(str, Enum):
    """Result of a conditional counter write."""

    APPLIED = "applied"
    SUPERSEDED = "superseded"


class FailurePolicy(str, Enum):
    """How a read reacts when a recompute cannot complete."""

    RAISE = "raise"
    STALE_ON_FAILURE = "stale_on_failure"


class GalleryStorageRecord(BaseModel):
    """Persisted storage counters and plan limits for one gallery."""

    gallery_id: str
    owner_id: Optional[str] = None
    plan: Optional[str] = None
    selection_enabled: bool = True
    originals_bytes_used: int = Field(default=0, ge=0)
    finals_bytes_used: int = Field(default=0, ge=0)
    bytes_used: int = Field(default=0, ge=0)
    originals_limit_bytes: Optional[int] = None
    finals_limit_bytes: Optional[int] = None
    storage_limit_bytes: Optional[int] = None
    last_bytes_used_recalculated_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("last_bytes_used_recalculated_at")
    @classmethod
    def _ensure_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def total_bytes_used(self) -> int:
        return self.originals_bytes_used + self.finals_bytes_used

    def cache_age_ms(self, now: datetime) -> Optional[int]:
        """Milliseconds since the last successful reconciliation, if any.

        A timestamp ahead of ``now`` (another host's clock) counts as age 0.
        """

        if self.last_bytes_used_recalculated_at is None:
            return None
        delta = now - self.last_bytes_used_recalculated_at
        return max(delta // timedelta(milliseconds=1), 0)


class StorageSnapshot(BaseModel):
    """Storage usage returned to callers of the cache-or-recompute gate."""

    gallery_id: str
    originals_bytes_used: int
    finals_bytes_used: int
    originals_limit_bytes: int = 0
    finals_limit_bytes: int = 0
    storage_limit_bytes: int = 0
    cached: bool = False
    cache_age_ms: Optional[int] = None
    stale: bool = False
    recalculated_at: Optional[datetime] = None
    previous_originals_bytes_used: Optional[int] = None
    previous_finals_bytes_used: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def from_record(
        cls,
        record: GalleryStorageRecord,
        *,
        cached: bool = False,
        cache_age_ms: Optional[int] = None,
        stale: bool = False,
        previous: Optional[GalleryStorageRecord] = None,
    ) -> "StorageSnapshot":
        return cls(
            gallery_id=record.gallery_id,
            originals_bytes_used=record.originals_bytes_used,
            finals_bytes_used=record.finals_bytes_used,
            originals_limit_bytes=record.originals_limit_bytes or 0,
            finals_limit_bytes=record.finals_limit_bytes or 0,
            storage_limit_bytes=record.storage_limit_bytes or 0,
            cached=cached,
            cache_age_ms=cache_age_ms,
            stale=stale,
            recalculated_at=record.last_bytes_used_recalculated_at,
            previous_originals_bytes_used=previous.originals_bytes_used if previous else None,
            previous_finals_bytes_used=previous.finals_bytes_used if previous else None,
        )

    @property
    def total_bytes_used(self) -> int:
        return self.originals_bytes_used + self.finals_bytes_used

    @property
    def originals_used_mb(self) -> str:
        return format_megabytes(self.originals_bytes_used)

    @property
    def originals_limit_mb(self) -> str:
        return format_megabytes(self.originals_limit_bytes)

    @property
    def finals_used_mb(self) -> str:
        return format_megabytes(self.finals_bytes_used)

    @property
    def finals_limit_mb(self) -> str:
        return format_megabytes(self.finals_limit_bytes)

    @property
    def storage_used_mb(self) -> str:
        return format_megabytes(self.total_bytes_used)

    @property
    def storage_limit_mb(self) -> str:
        return format_megabytes(self.storage_limit_bytes)


class CommitResult(BaseModel):
    """Outcome of one conditional write attempt."""

    outcome: CommitOutcome
    attempted_at: datetime
    record: Optional[GalleryStorageRecord] = None

    model_config = ConfigDict(frozen=True)

    @property
    def applied(self) -> bool:
        return self.outcome == CommitOutcome.APPLIED


class ReconciliationResult(BaseModel):
    """Summary of a reconciliation including any tolerance-gated retry."""

    gallery_id: str
    originals_bytes: int
    finals_bytes: int
    attempts: int = Field(default=1, ge=1)
    retried: bool = False
    applied: bool = True
    record: Optional[GalleryStorageRecord] = None

    model_config = ConfigDict(frozen=True)


class PlanSuggestion(BaseModel):
    """Upgrade tier proposed when an upload would exceed the plan limit."""

    plan_key: str
    storage_limit_bytes: int
    price_cents: int
    selection_enabled: bool = True

    model_config = ConfigDict(frozen=True)


class LimitValidation(BaseModel):
    """Decision returned by the upload limit validator."""

    gallery_id: str
    within_limit: bool
    current_usage_bytes: int
    pending_upload_bytes: int = 0
    projected_usage_bytes: int
    originals_limit_bytes: Optional[int] = None
    excess_bytes: int = 0
    suggested_plan: Optional[PlanSuggestion] = None

    model_config = ConfigDict(frozen=True)

    @property
    def used_percentage(self) -> Optional[float]:
        if not self.originals_limit_bytes:
            return None
        return (self.projected_usage_bytes / self.originals_limit_bytes) * 100


__all__ = [
    "CommitOutcome",
    "CommitResult",
    "FailurePolicy",
    "GalleryStorageRecord",
    "ImageClass",
    "LimitValidation",
    "PlanSuggestion",
    "ReconciliationResult",
    "StorageSnapshot",
    "format_megabytes",
]
