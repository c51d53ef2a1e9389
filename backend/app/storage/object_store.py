"""S3 listing adapter used by the enumeration aggregation strategy."""
from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .aggregator import ObjectPage, StoredObject
from .exceptions import StorageBackendError


def create_s3_client(region: Optional[str] = None) -> Any:
    if region:
        return boto3.client("s3", region_name=region)
    return boto3.client("s3")


class S3ObjectLister:
    """Lists one page of objects under a prefix with ``list_objects_v2``."""

    def __init__(self, bucket: str, *, client: Any = None, region: Optional[str] = None) -> None:
        if not bucket:
            raise ValueError("bucket must be provided")
        self._bucket = bucket
        self._client = client if client is not None else create_s3_client(region)

    def list_page(self, prefix: str, *, continuation_token: Optional[str], page_size: int) -> ObjectPage:
        params: Dict[str, Any] = {"Bucket": self._bucket, "Prefix": prefix, "MaxKeys": page_size}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        try:
            response = self._client.list_objects_v2(**params)
        except (BotoCoreError, ClientError) as exc:
            raise StorageBackendError(f"listing s3://{self._bucket}/{prefix} failed: {exc}") from exc

        objects = tuple(
            StoredObject(key=obj["Key"], size=int(obj.get("Size", 0)))
            for obj in response.get("Contents", [])
        )
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return ObjectPage(objects=objects, next_token=next_token)


__all__ = ["S3ObjectLister", "create_s3_client"]
