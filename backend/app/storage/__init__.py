"""Gallery storage accounting: aggregation, reconciliation, caching and limits."""

from .aggregator import (
    ImageIndex,
    IndexPage,
    IndexQuerySizeAggregator,
    ObjectLister,
    ObjectListingSizeAggregator,
    ObjectPage,
    SizeAggregator,
    StoredObject,
    class_prefix,
    is_countable_final,
)
from .catalog import (
    PLAN_CATALOG,
    PlanDefinition,
    PlanDuration,
    duration_of,
    get_plan,
    price_with_discount,
    suggest_upgrade,
)
from .config import StorageConfig, load_storage_config
from .events import StorageEventProcessor, extract_object_keys, gallery_ids_from_keys
from .exceptions import (
    AggregationFailedError,
    GalleryNotFoundError,
    StorageAccountingError,
    StorageBackendError,
)
from .limits import LimitValidator
from .memory import InMemoryGalleryStorageRepository
from .models import (
    CommitOutcome,
    CommitResult,
    FailurePolicy,
    GalleryStorageRecord,
    ImageClass,
    LimitValidation,
    PlanSuggestion,
    ReconciliationResult,
    StorageSnapshot,
    format_megabytes,
)
from .service import GalleryStorageRepository, StorageAccountingService

__all__ = [
    "AggregationFailedError",
    "CommitOutcome",
    "CommitResult",
    "FailurePolicy",
    "GalleryNotFoundError",
    "GalleryStorageRecord",
    "GalleryStorageRepository",
    "ImageClass",
    "ImageIndex",
    "InMemoryGalleryStorageRepository",
    "IndexPage",
    "IndexQuerySizeAggregator",
    "LimitValidation",
    "LimitValidator",
    "ObjectLister",
    "ObjectListingSizeAggregator",
    "ObjectPage",
    "PLAN_CATALOG",
    "PlanDefinition",
    "PlanDuration",
    "PlanSuggestion",
    "ReconciliationResult",
    "SizeAggregator",
    "StorageAccountingError",
    "StorageAccountingService",
    "StorageBackendError",
    "StorageConfig",
    "StorageEventProcessor",
    "StorageSnapshot",
    "StoredObject",
    "class_prefix",
    "duration_of",
    "extract_object_keys",
    "format_megabytes",
    "gallery_ids_from_keys",
    "get_plan",
    "is_countable_final",
    "load_storage_config",
    "price_with_discount",
    "suggest_upgrade",
]
