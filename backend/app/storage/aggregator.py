"""Size aggregation strategies summing the bytes of one image class."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from .exceptions import AggregationFailedError, StorageBackendError
from .models import ImageClass

logger = logging.getLogger("storage")

DEFAULT_PAGE_SIZE = 1000
DEFAULT_MAX_PAGES = 10_000

_CLASS_DIRECTORIES = {
    ImageClass.ORIGINAL: "originals",
    ImageClass.FINAL: "final",
}


@dataclass(frozen=True)
class StoredObject:
    """An object returned by the object-store listing primitive."""

    key: str
    size: int


@dataclass(frozen=True)
class ObjectPage:
    objects: Tuple[StoredObject, ...] = ()
    next_token: Optional[str] = None


@dataclass(frozen=True)
class IndexPage:
    sizes: Tuple[int, ...] = ()
    last_key: Optional[str] = None


class ObjectLister(Protocol):
    """Paginated "list objects under prefix" primitive."""

    def list_page(self, prefix: str, *, continuation_token: Optional[str], page_size: int) -> ObjectPage:
        ...


class ImageIndex(Protocol):
    """Paginated query of per-image index rows for one gallery."""

    def query_sizes(
        self,
        gallery_id: str,
        image_class: ImageClass,
        *,
        start_after: Optional[str],
        page_size: int,
    ) -> IndexPage:
        ...


class SizeAggregator(Protocol):
    """Computes the total byte size of one image class in a gallery."""

    def aggregate(self, gallery_id: str, image_class: ImageClass) -> int:
        ...


def class_prefix(gallery_id: str, image_class: ImageClass, key_prefix: str = "") -> str:
    """Object key prefix holding ``image_class`` objects of a gallery."""

    root = key_prefix.strip("/")
    parts = [root] if root else []
    parts.extend([gallery_id, _CLASS_DIRECTORIES[image_class]])
    return "/".join(parts) + "/"


def is_countable_final(relative_path: str) -> bool:
    """Finals count only at ``{orderId}/{filename}``; deeper paths are derivatives."""

    segments = relative_path.split("/")
    return len(segments) == 2 and all(segments)


@dataclass
class ObjectListingSizeAggregator:
    """Sums object sizes by enumerating the object store under a prefix."""

    lister: ObjectLister
    key_prefix: str = ""
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = DEFAULT_MAX_PAGES

    def aggregate(self, gallery_id: str, image_class: ImageClass) -> int:
        prefix = class_prefix(gallery_id, image_class, self.key_prefix)
        total = 0
        pages = 0
        token: Optional[str] = None
        while True:
            if pages >= self.max_pages:
                raise AggregationFailedError(
                    gallery_id, image_class, f"listing exceeded {self.max_pages} pages"
                )
            try:
                page = self.lister.list_page(prefix, continuation_token=token, page_size=self.page_size)
            except StorageBackendError as exc:
                raise AggregationFailedError(gallery_id, image_class, str(exc)) from exc
            pages += 1
            total += sum(
                max(int(obj.size), 0)
                for obj in page.objects
                if self._counts(obj.key, prefix, image_class)
            )
            token = page.next_token
            if not token:
                break

        logger.debug(
            "Listed %s bytes of %s objects for gallery=%s pages=%s",
            total,
            image_class.value,
            gallery_id,
            pages,
        )
        return total

    @staticmethod
    def _counts(key: str, prefix: str, image_class: ImageClass) -> bool:
        if not key.startswith(prefix):
            return False
        if image_class == ImageClass.FINAL:
            return is_countable_final(key[len(prefix):])
        return True


@dataclass
class IndexQuerySizeAggregator:
    """Sums the ``size`` field of image index rows of one class."""

    index: ImageIndex
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = DEFAULT_MAX_PAGES

    def aggregate(self, gallery_id: str, image_class: ImageClass) -> int:
        total = 0
        pages = 0
        last_key: Optional[str] = None
        while True:
            if pages >= self.max_pages:
                raise AggregationFailedError(
                    gallery_id, image_class, f"index query exceeded {self.max_pages} pages"
                )
            try:
                page = self.index.query_sizes(
                    gallery_id,
                    image_class,
                    start_after=last_key,
                    page_size=self.page_size,
                )
            except StorageBackendError as exc:
                raise AggregationFailedError(gallery_id, image_class, str(exc)) from exc
            pages += 1
            total += sum(max(int(size or 0), 0) for size in page.sizes)
            last_key = page.last_key
            if not last_key:
                break
        return total


def aggregate_both(aggregator: SizeAggregator, gallery_id: str) -> Tuple[int, int]:
    """Aggregate originals then finals, one class at a time."""

    originals = aggregator.aggregate(gallery_id, ImageClass.ORIGINAL)
    finals = aggregator.aggregate(gallery_id, ImageClass.FINAL)
    return originals, finals


__all__ = [
    "DEFAULT_MAX_PAGES",
    "DEFAULT_PAGE_SIZE",
    "ImageIndex",
    "IndexPage",
    "IndexQuerySizeAggregator",
    "ObjectLister",
    "ObjectListingSizeAggregator",
    "ObjectPage",
    "SizeAggregator",
    "StoredObject",
    "aggregate_both",
    "class_prefix",
    "is_countable_final",
]
