"""Storage accounting configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os

AGGREGATION_BACKENDS = ("index", "listing")


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for storage reconciliation and its backing stores."""

    aggregation_backend: str
    galleries_table: str
    images_table: str
    galleries_bucket: Optional[str]
    key_prefix: str
    aws_region: Optional[str]
    cache_ttl_seconds: int
    tolerance_bytes: int
    page_size: int
    max_pages: int
    events_token: Optional[str] = None


def _to_int(name: str, value: Optional[str], *, default: int, minimum: int = 0) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return parsed


def load_storage_config(env: Optional[Mapping[str, str]] = None) -> StorageConfig:
    """Load :class:`StorageConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    backend = (env_mapping.get("STORAGE_AGGREGATION_BACKEND") or "index").strip().lower()
    if backend not in AGGREGATION_BACKENDS:
        raise ValueError(
            f"STORAGE_AGGREGATION_BACKEND must be one of {', '.join(AGGREGATION_BACKENDS)}"
        )

    bucket = (env_mapping.get("GALLERIES_BUCKET") or "").strip() or None
    if backend == "listing" and not bucket:
        raise ValueError("GALLERIES_BUCKET is required for the listing aggregation backend")

    return StorageConfig(
        aggregation_backend=backend,
        galleries_table=env_mapping.get("GALLERIES_TABLE") or "galleries",
        images_table=env_mapping.get("IMAGES_TABLE") or "gallery_images",
        galleries_bucket=bucket,
        key_prefix=(env_mapping.get("GALLERY_KEY_PREFIX", "galleries") or "").strip("/"),
        aws_region=env_mapping.get("AWS_REGION") or None,
        cache_ttl_seconds=_to_int(
            "STORAGE_CACHE_TTL_SECONDS", env_mapping.get("STORAGE_CACHE_TTL_SECONDS"), default=300
        ),
        tolerance_bytes=_to_int(
            "STORAGE_RECONCILE_TOLERANCE_BYTES",
            env_mapping.get("STORAGE_RECONCILE_TOLERANCE_BYTES"),
            default=1024,
        ),
        page_size=_to_int("STORAGE_PAGE_SIZE", env_mapping.get("STORAGE_PAGE_SIZE"), default=1000, minimum=1),
        max_pages=_to_int("STORAGE_MAX_PAGES", env_mapping.get("STORAGE_MAX_PAGES"), default=10_000, minimum=1),
        events_token=(env_mapping.get("STORAGE_EVENTS_TOKEN") or "").strip() or None,
    )


__all__ = ["AGGREGATION_BACKENDS", "StorageConfig", "load_storage_config"]
