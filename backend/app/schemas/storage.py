"""API schemas for gallery storage endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..storage import LimitValidation, StorageSnapshot


class StorageUsageResponse(BaseModel):
    gallery_id: str = Field(alias="galleryId")
    originals_bytes_used: int = Field(alias="originalsBytesUsed")
    finals_bytes_used: int = Field(alias="finalsBytesUsed")
    originals_limit_bytes: int = Field(alias="originalsLimitBytes")
    finals_limit_bytes: int = Field(alias="finalsLimitBytes")
    storage_limit_bytes: int = Field(alias="storageLimitBytes")
    originals_used_mb: str = Field(alias="originalsUsedMB")
    originals_limit_mb: str = Field(alias="originalsLimitMB")
    finals_used_mb: str = Field(alias="finalsUsedMB")
    finals_limit_mb: str = Field(alias="finalsLimitMB")
    storage_used_mb: str = Field(alias="storageUsedMB")
    storage_limit_mb: str = Field(alias="storageLimitMB")
    cached: bool
    cache_age_ms: Optional[int] = Field(alias="cacheAgeMs", default=None)
    stale: bool = False
    last_recalculated_at: Optional[datetime] = Field(alias="lastBytesUsedRecalculatedAt", default=None)
    old_originals_bytes_used: Optional[int] = Field(alias="oldOriginalsBytesUsed", default=None)
    old_finals_bytes_used: Optional[int] = Field(alias="oldFinalsBytesUsed", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_snapshot(cls, snapshot: StorageSnapshot) -> "StorageUsageResponse":
        return cls(
            gallery_id=snapshot.gallery_id,
            originals_bytes_used=snapshot.originals_bytes_used,
            finals_bytes_used=snapshot.finals_bytes_used,
            originals_limit_bytes=snapshot.originals_limit_bytes,
            finals_limit_bytes=snapshot.finals_limit_bytes,
            storage_limit_bytes=snapshot.storage_limit_bytes,
            originals_used_mb=snapshot.originals_used_mb,
            originals_limit_mb=snapshot.originals_limit_mb,
            finals_used_mb=snapshot.finals_used_mb,
            finals_limit_mb=snapshot.finals_limit_mb,
            storage_used_mb=snapshot.storage_used_mb,
            storage_limit_mb=snapshot.storage_limit_mb,
            cached=snapshot.cached,
            cache_age_ms=snapshot.cache_age_ms,
            stale=snapshot.stale,
            last_recalculated_at=snapshot.recalculated_at,
            old_originals_bytes_used=snapshot.previous_originals_bytes_used,
            old_finals_bytes_used=snapshot.previous_finals_bytes_used,
        )


class UploadLimitRequest(BaseModel):
    pending_upload_bytes: int = Field(alias="pendingUploadBytes", default=0, ge=0)

    model_config = ConfigDict(populate_by_name=True)


class UploadLimitResponse(BaseModel):
    within_limit: bool = Field(alias="withinLimit")
    uploaded_size_bytes: int = Field(alias="uploadedSizeBytes")
    pending_upload_bytes: int = Field(alias="pendingUploadBytes")
    projected_usage_bytes: int = Field(alias="projectedUsageBytes")
    originals_limit_bytes: Optional[int] = Field(alias="originalsLimitBytes", default=None)
    excess_bytes: int = Field(alias="excessBytes", default=0)
    used_percentage: Optional[float] = Field(alias="usedPercentage", default=None)
    next_tier_plan: Optional[str] = Field(alias="nextTierPlan", default=None)
    next_tier_price_cents: Optional[int] = Field(alias="nextTierPriceCents", default=None)
    next_tier_limit_bytes: Optional[int] = Field(alias="nextTierLimitBytes", default=None)
    is_selection_gallery: Optional[bool] = Field(alias="isSelectionGallery", default=None)
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_validation(cls, validation: LimitValidation) -> "UploadLimitResponse":
        suggestion = validation.suggested_plan
        message = None
        if validation.originals_limit_bytes is None:
            message = "No plan set yet - plan will be calculated after upload"
        elif not validation.within_limit:
            message = "Storage limit exceeded"
        return cls(
            within_limit=validation.within_limit,
            uploaded_size_bytes=validation.current_usage_bytes,
            pending_upload_bytes=validation.pending_upload_bytes,
            projected_usage_bytes=validation.projected_usage_bytes,
            originals_limit_bytes=validation.originals_limit_bytes,
            excess_bytes=validation.excess_bytes,
            used_percentage=validation.used_percentage,
            next_tier_plan=suggestion.plan_key if suggestion else None,
            next_tier_price_cents=suggestion.price_cents if suggestion else None,
            next_tier_limit_bytes=suggestion.storage_limit_bytes if suggestion else None,
            is_selection_gallery=suggestion.selection_enabled if suggestion else None,
            message=message,
        )
