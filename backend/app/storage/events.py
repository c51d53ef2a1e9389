"""Turn object-store notifications into per-gallery storage reconciliations."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import unquote_plus

from .exceptions import GalleryNotFoundError
from .service import StorageAccountingService

logger = logging.getLogger("storage.events")

_DERIVATIVE_DIRECTORIES = ("/previews/", "/thumbs/", "/bigthumbs/")


def _records_from_body(body: str) -> List[Mapping[str, Any]]:
    parsed = json.loads(body)
    if not isinstance(parsed, dict):
        return []
    if parsed.get("Type") == "Notification" and parsed.get("Message"):
        parsed = json.loads(parsed["Message"])
        if not isinstance(parsed, dict):
            return []
    if isinstance(parsed.get("Records"), list):
        return list(parsed["Records"])
    if "s3" in parsed:
        return [parsed]
    logger.warning("Unknown queue message format keys=%s", sorted(parsed.keys()))
    return []


def extract_object_keys(event: Mapping[str, Any]) -> List[str]:
    """Return decoded object keys from direct, SQS-batched or SNS-wrapped notifications."""

    records: List[Mapping[str, Any]] = []
    for record in event.get("Records") or []:
        if record.get("eventSource") == "aws:sqs" or "body" in record:
            body = record.get("body")
            if not body:
                continue
            try:
                records.extend(_records_from_body(body))
            except (TypeError, ValueError) as exc:
                logger.warning("Failed to parse queue message body: %s preview=%s", exc, str(body)[:200])
            continue
        records.append(record)

    keys: List[str] = []
    for record in records:
        raw_key = ((record.get("s3") or {}).get("object") or {}).get("key")
        if raw_key:
            keys.append(unquote_plus(raw_key))
    return keys


def gallery_id_from_key(key: str, key_prefix: str = "galleries") -> Optional[str]:
    """Gallery id for an original or final object key, ``None`` for anything else."""

    if key.endswith("/") or any(marker in key for marker in _DERIVATIVE_DIRECTORIES):
        return None
    if "/originals/" not in key and "/final/" not in key:
        return None

    parts = key.split("/")
    root = key_prefix.strip("/")
    if root:
        if len(parts) < 3 or parts[0] != root:
            return None
        gallery_id = parts[1]
    else:
        gallery_id = parts[0]
    return gallery_id or None


def gallery_ids_from_keys(keys: Iterable[str], key_prefix: str = "galleries") -> List[str]:
    """Unique gallery ids in first-seen order."""

    seen: Dict[str, None] = {}
    for key in keys:
        gallery_id = gallery_id_from_key(key, key_prefix)
        if gallery_id is None:
            logger.debug("Skipping key outside originals/final %s", key)
            continue
        seen.setdefault(gallery_id, None)
    return list(seen)


@dataclass
class EventProcessingSummary:
    """Per-gallery outcome of one notification batch."""

    reconciled: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"reconciled": self.reconciled, "missing": self.missing, "failed": self.failed}


class StorageEventProcessor:
    """Reconciles every gallery touched by an upload or delete notification."""

    def __init__(self, service: StorageAccountingService, *, key_prefix: str = "galleries") -> None:
        self._service = service
        self._key_prefix = key_prefix

    def process(self, event: Mapping[str, Any]) -> EventProcessingSummary:
        gallery_ids = gallery_ids_from_keys(extract_object_keys(event), self._key_prefix)
        return self.reconcile_galleries(gallery_ids)

    def reconcile_galleries(self, gallery_ids: Iterable[str]) -> EventProcessingSummary:
        summary = EventProcessingSummary()
        for gallery_id in gallery_ids:
            try:
                self._service.get_storage(gallery_id, force_recalc=True)
            except GalleryNotFoundError:
                logger.warning("Gallery not found during recalculation gallery=%s", gallery_id)
                summary.missing.append(gallery_id)
                continue
            except Exception:
                # One gallery failing must not block the rest of the batch.
                logger.exception("Failed to recalculate storage gallery=%s", gallery_id)
                summary.failed.append(gallery_id)
                continue
            summary.reconciled.append(gallery_id)

        logger.info(
            "Processed storage events reconciled=%s missing=%s failed=%s",
            len(summary.reconciled),
            len(summary.missing),
            len(summary.failed),
        )
        return summary


__all__ = [
    "EventProcessingSummary",
    "StorageEventProcessor",
    "extract_object_keys",
    "gallery_id_from_key",
    "gallery_ids_from_keys",
]
