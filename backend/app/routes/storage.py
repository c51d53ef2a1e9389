"""API routes exposing gallery storage usage, upload limit checks and event ingress."""
from __future__ import annotations

import hmac
import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Cookie, Depends, Header, HTTPException, Query, status

from ... import app_context
from ..schemas.storage import StorageUsageResponse, UploadLimitRequest, UploadLimitResponse
from ..services import storage as storage_services
from ..storage import FailurePolicy, GalleryStorageRecord, StorageAccountingError

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")

logger = logging.getLogger("storage.events")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
):
    return app_context.get_current_user(session_token=session_token)


router = APIRouter(prefix="/api/galleries", tags=["storage"])


def _require_owner(record: GalleryStorageRecord, current_user: Any) -> None:
    if record.owner_id is None or record.owner_id != str(current_user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def _load_owned_record(gallery_id: str, current_user: Any) -> GalleryStorageRecord:
    service = storage_services.get_storage_service()
    try:
        record = service.get_record(gallery_id)
    except StorageAccountingError as exc:
        raise exc.to_http_exception() from exc
    _require_owner(record, current_user)
    return record


@router.post("/storage/events")
def process_storage_events(
    event: Dict[str, Any] = Body(...),
    events_token: Optional[str] = Header(None, alias="X-Storage-Events-Token"),
) -> Dict[str, List[str]]:
    """Reconcile every gallery touched by an object-store notification batch."""

    expected = storage_services.get_storage_config().events_token
    if expected and not hmac.compare_digest(events_token or "", expected):
        logger.warning("Rejected storage event batch with invalid token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid events token")

    summary = storage_services.get_storage_event_processor().process(event)
    return summary.to_dict()


@router.get("/{gallery_id}/storage", response_model=StorageUsageResponse, response_model_by_alias=True)
def get_gallery_storage(
    gallery_id: str,
    force_recalc: bool = Query(False, alias="forceRecalc"),
    *,
    current_user=Depends(_get_current_user),
) -> StorageUsageResponse:
    record = _load_owned_record(gallery_id, current_user)
    service = storage_services.get_storage_service()
    # Dashboard reads degrade to stale counters; forced reads fail loudly.
    policy = FailurePolicy.RAISE if force_recalc else FailurePolicy.STALE_ON_FAILURE
    try:
        snapshot = service.get_storage_for_record(record, force_recalc, on_failure=policy)
    except StorageAccountingError as exc:
        raise exc.to_http_exception() from exc
    return StorageUsageResponse.from_snapshot(snapshot)


@router.post(
    "/{gallery_id}/storage/recalculate",
    response_model=StorageUsageResponse,
    response_model_by_alias=True,
)
def recalculate_gallery_storage(
    gallery_id: str,
    *,
    current_user=Depends(_get_current_user),
) -> StorageUsageResponse:
    record = _load_owned_record(gallery_id, current_user)
    service = storage_services.get_storage_service()
    try:
        snapshot = service.get_storage_for_record(record, force_recalc=True)
    except StorageAccountingError as exc:
        raise exc.to_http_exception() from exc
    return StorageUsageResponse.from_snapshot(snapshot)


@router.post(
    "/{gallery_id}/upload-limits/validate",
    response_model=UploadLimitResponse,
    response_model_by_alias=True,
)
def validate_upload_limits(
    gallery_id: str,
    payload: UploadLimitRequest,
    *,
    current_user=Depends(_get_current_user),
) -> UploadLimitResponse:
    record = _load_owned_record(gallery_id, current_user)
    validator = storage_services.get_limit_validator()
    try:
        validation = validator.validate(gallery_id, payload.pending_upload_bytes, record=record)
    except StorageAccountingError as exc:
        raise exc.to_http_exception() from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    response = UploadLimitResponse.from_validation(validation)
    if not validation.within_limit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=response.model_dump(by_alias=True),
        )
    return response
