"""Upload limit validation against the gallery's plan ceiling."""
from __future__ import annotations

import logging
from typing import Mapping, Optional

from .catalog import PLAN_CATALOG, PlanDefinition, price_with_discount, suggest_upgrade
from .models import FailurePolicy, GalleryStorageRecord, LimitValidation, PlanSuggestion
from .service import StorageAccountingService

logger = logging.getLogger("storage")


class LimitValidator:
    """Decides whether a pending upload fits within the originals limit."""

    def __init__(
        self,
        service: StorageAccountingService,
        *,
        catalog: Mapping[str, PlanDefinition] = PLAN_CATALOG,
    ) -> None:
        self._service = service
        self._catalog = catalog

    def validate(
        self,
        gallery_id: str,
        pending_upload_bytes: int = 0,
        *,
        record: Optional[GalleryStorageRecord] = None,
    ) -> LimitValidation:
        """Check a pending upload; ``record`` skips the lookup when the caller already has it."""

        if pending_upload_bytes < 0:
            raise ValueError("pending_upload_bytes must be >= 0")

        if record is None:
            record = self._service.get_record(gallery_id)
        # Enforcement never trusts the cache and never falls back to stale counters.
        snapshot = self._service.get_storage_for_record(
            record, force_recalc=True, on_failure=FailurePolicy.RAISE
        )
        current = snapshot.originals_bytes_used
        projected = current + pending_upload_bytes
        limit = record.originals_limit_bytes

        if not limit:
            return LimitValidation(
                gallery_id=gallery_id,
                within_limit=True,
                current_usage_bytes=current,
                pending_upload_bytes=pending_upload_bytes,
                projected_usage_bytes=projected,
            )

        if projected <= limit:
            return LimitValidation(
                gallery_id=gallery_id,
                within_limit=True,
                current_usage_bytes=current,
                pending_upload_bytes=pending_upload_bytes,
                projected_usage_bytes=projected,
                originals_limit_bytes=limit,
            )

        plan = suggest_upgrade(record.plan, projected, self._catalog)
        suggestion = None
        if plan is not None:
            suggestion = PlanSuggestion(
                plan_key=plan.key,
                storage_limit_bytes=plan.storage_limit_bytes,
                price_cents=price_with_discount(plan, record.selection_enabled),
                selection_enabled=record.selection_enabled,
            )
        logger.info(
            "Upload limit exceeded gallery=%s projected=%s limit=%s suggested=%s",
            gallery_id,
            projected,
            limit,
            suggestion.plan_key if suggestion else None,
        )
        return LimitValidation(
            gallery_id=gallery_id,
            within_limit=False,
            current_usage_bytes=current,
            pending_upload_bytes=pending_upload_bytes,
            projected_usage_bytes=projected,
            originals_limit_bytes=limit,
            excess_bytes=projected - limit,
            suggested_plan=suggestion,
        )


__all__ = ["LimitValidator"]
