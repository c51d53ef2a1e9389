"""Application wiring for the storage accounting service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..storage import (
    IndexQuerySizeAggregator,
    LimitValidator,
    ObjectListingSizeAggregator,
    SizeAggregator,
    StorageAccountingService,
    StorageConfig,
    StorageEventProcessor,
    load_storage_config,
)
from ..storage.object_store import S3ObjectLister
from ..storage.repository import PostgresGalleryStorageRepository, PostgresImageIndex

logger = logging.getLogger("storage")


@lru_cache(maxsize=1)
def get_storage_config() -> StorageConfig:
    return load_storage_config()


def build_size_aggregator(config: StorageConfig) -> SizeAggregator:
    """Select the aggregation strategy named by the configuration."""

    if config.aggregation_backend == "listing":
        lister = S3ObjectLister(config.galleries_bucket or "", region=config.aws_region)
        return ObjectListingSizeAggregator(
            lister=lister,
            key_prefix=config.key_prefix,
            page_size=config.page_size,
            max_pages=config.max_pages,
        )
    index = PostgresImageIndex(table=config.images_table)
    return IndexQuerySizeAggregator(index=index, page_size=config.page_size, max_pages=config.max_pages)


@lru_cache(maxsize=1)
def get_storage_service() -> StorageAccountingService:
    config = get_storage_config()
    logger.info(
        "Configuring storage accounting backend=%s ttl=%ss tolerance=%sB",
        config.aggregation_backend,
        config.cache_ttl_seconds,
        config.tolerance_bytes,
    )
    return StorageAccountingService(
        repository=PostgresGalleryStorageRepository(table=config.galleries_table),
        aggregator=build_size_aggregator(config),
        cache_ttl_seconds=config.cache_ttl_seconds,
        tolerance_bytes=config.tolerance_bytes,
    )


@lru_cache(maxsize=1)
def get_limit_validator() -> LimitValidator:
    return LimitValidator(get_storage_service())


@lru_cache(maxsize=1)
def get_storage_event_processor() -> StorageEventProcessor:
    config = get_storage_config()
    if not config.events_token:
        logger.warning("STORAGE_EVENTS_TOKEN is not set; the storage events endpoint accepts unsigned batches")
    return StorageEventProcessor(get_storage_service(), key_prefix=config.key_prefix)


__all__ = [
    "build_size_aggregator",
    "get_limit_validator",
    "get_storage_config",
    "get_storage_event_processor",
    "get_storage_service",
]
