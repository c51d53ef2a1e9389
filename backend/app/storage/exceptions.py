"""Exceptions raised by the storage accounting subsystem."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status

from .models import ImageClass


@dataclass
class StorageAccountingError(Exception):
    """Represents a storage accounting failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class GalleryNotFoundError(StorageAccountingError):
    """Raised when the gallery record does not exist."""

    def __init__(self, gallery_id: str) -> None:
        self.gallery_id = gallery_id
        super().__init__(
            code="gallery_not_found",
            message="Gallery not found",
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"gallery_id": gallery_id},
        )


class AggregationFailedError(StorageAccountingError):
    """Raised when summing one image class could not run to completion."""

    def __init__(self, gallery_id: str, image_class: ImageClass, reason: str) -> None:
        self.gallery_id = gallery_id
        self.image_class = image_class
        super().__init__(
            code="storage_aggregation_failed",
            message=f"Failed to aggregate {image_class.value} sizes: {reason}",
            detail={"gallery_id": gallery_id, "image_class": image_class.value},
        )


class StorageBackendError(RuntimeError):
    """Raised by object-store and index adapters when a backing call fails."""


__all__ = [
    "AggregationFailedError",
    "GalleryNotFoundError",
    "StorageAccountingError",
    "StorageBackendError",
]
