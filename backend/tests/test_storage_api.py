from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, Optional

import pytest
from fastapi import HTTPException

from backend.app.routes import storage as storage_routes
from backend.app.schemas.storage import StorageUsageResponse, UploadLimitRequest, UploadLimitResponse
from backend.app.services import storage as storage_services
from backend.app.storage import (
    AggregationFailedError,
    GalleryStorageRecord,
    ImageClass,
    InMemoryGalleryStorageRepository,
    LimitValidator,
    StorageAccountingService,
    StorageEventProcessor,
    load_storage_config,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
MIB = 1024 ** 2


class FakeSizeAggregator:
    def __init__(self, originals: int, finals: int) -> None:
        self.totals: Dict[ImageClass, int] = {ImageClass.ORIGINAL: originals, ImageClass.FINAL: finals}
        self.fail: Optional[ImageClass] = None

    def aggregate(self, gallery_id: str, image_class: ImageClass) -> int:
        if self.fail == image_class:
            raise AggregationFailedError(gallery_id, image_class, "listing interrupted")
        return self.totals[image_class]


@pytest.fixture
def aggregator() -> FakeSizeAggregator:
    return FakeSizeAggregator(originals=300 * MIB, finals=100 * MIB)


@pytest.fixture
def service(monkeypatch, aggregator) -> StorageAccountingService:
    repository = InMemoryGalleryStorageRepository()
    repository.add(
        GalleryStorageRecord(
            gallery_id="g1",
            owner_id="owner-1",
            plan="1GB-1m",
            originals_bytes_used=200 * MIB,
            finals_bytes_used=50 * MIB,
            bytes_used=250 * MIB,
            originals_limit_bytes=1024 * MIB,
            finals_limit_bytes=1024 * MIB,
            storage_limit_bytes=2048 * MIB,
            last_bytes_used_recalculated_at=NOW - timedelta(minutes=1),
        )
    )
    accounting = StorageAccountingService(repository, aggregator, clock=lambda: NOW)
    validator = LimitValidator(accounting)
    monkeypatch.setattr(storage_services, "get_storage_service", lambda: accounting)
    monkeypatch.setattr(storage_services, "get_limit_validator", lambda: validator)
    return accounting


def test_get_storage_returns_cached_usage(service):
    user = SimpleNamespace(id="owner-1")

    response = storage_routes.get_gallery_storage("g1", force_recalc=False, current_user=user)

    assert isinstance(response, StorageUsageResponse)
    assert response.cached is True
    assert response.cache_age_ms == 60_000
    body = response.model_dump(by_alias=True)
    assert body["originalsBytesUsed"] == 200 * MIB
    assert body["originalsUsedMB"] == "200.00"
    assert body["storageUsedMB"] == "250.00"
    assert body["storageLimitMB"] == "2048.00"


def test_force_recalc_returns_fresh_values_and_previous_counters(service):
    user = SimpleNamespace(id="owner-1")

    response = storage_routes.get_gallery_storage("g1", force_recalc=True, current_user=user)

    body = response.model_dump(by_alias=True)
    assert body["cached"] is False
    assert body["originalsBytesUsed"] == 300 * MIB
    assert body["finalsBytesUsed"] == 100 * MIB
    assert body["oldOriginalsBytesUsed"] == 200 * MIB
    assert body["oldFinalsBytesUsed"] == 50 * MIB
    assert body["lastBytesUsedRecalculatedAt"] == NOW


def test_dashboard_read_serves_stale_values_when_recompute_fails(service, aggregator, monkeypatch):
    aggregator.fail = ImageClass.ORIGINAL
    stale_clock_service = StorageAccountingService(
        service._repository, aggregator, clock=lambda: NOW + timedelta(hours=1)
    )
    monkeypatch.setattr(storage_services, "get_storage_service", lambda: stale_clock_service)

    response = storage_routes.get_gallery_storage(
        "g1", force_recalc=False, current_user=SimpleNamespace(id="owner-1")
    )

    assert response.stale is True
    assert response.originals_bytes_used == 200 * MIB


def test_forced_read_reports_aggregation_failure(service, aggregator):
    aggregator.fail = ImageClass.FINAL

    with pytest.raises(HTTPException) as exc_info:
        storage_routes.get_gallery_storage("g1", force_recalc=True, current_user=SimpleNamespace(id="owner-1"))

    assert exc_info.value.status_code == 500
    assert exc_info.value.detail["error"] == "storage_aggregation_failed"


def test_recalculate_endpoint_always_recomputes(service):
    response = storage_routes.recalculate_gallery_storage("g1", current_user=SimpleNamespace(id="owner-1"))

    assert response.cached is False
    assert response.originals_bytes_used == 300 * MIB


def test_missing_gallery_returns_404(service):
    with pytest.raises(HTTPException) as exc_info:
        storage_routes.get_gallery_storage("nope", force_recalc=False, current_user=SimpleNamespace(id="owner-1"))

    assert exc_info.value.status_code == 404


def test_other_users_cannot_read_storage(service):
    with pytest.raises(HTTPException) as exc_info:
        storage_routes.recalculate_gallery_storage("g1", current_user=SimpleNamespace(id="intruder"))

    assert exc_info.value.status_code == 403


def test_validate_upload_within_limit(service):
    payload = UploadLimitRequest(pendingUploadBytes=100 * MIB)

    response = storage_routes.validate_upload_limits("g1", payload, current_user=SimpleNamespace(id="owner-1"))

    assert isinstance(response, UploadLimitResponse)
    assert response.within_limit is True
    assert response.uploaded_size_bytes == 300 * MIB
    assert response.projected_usage_bytes == 400 * MIB


def test_validate_upload_over_limit_returns_400_with_suggestion(service):
    payload = UploadLimitRequest(pendingUploadBytes=800 * MIB)

    with pytest.raises(HTTPException) as exc_info:
        storage_routes.validate_upload_limits("g1", payload, current_user=SimpleNamespace(id="owner-1"))

    assert exc_info.value.status_code == 400
    detail = exc_info.value.detail
    assert detail["withinLimit"] is False
    assert detail["excessBytes"] == 76 * MIB
    assert detail["nextTierPlan"] == "3GB-1m"
    assert detail["nextTierPriceCents"] == 800
    assert detail["isSelectionGallery"] is True


def test_validate_upload_fails_closed(service, aggregator):
    aggregator.fail = ImageClass.ORIGINAL

    with pytest.raises(HTTPException) as exc_info:
        storage_routes.validate_upload_limits(
            "g1", UploadLimitRequest(), current_user=SimpleNamespace(id="owner-1")
        )

    assert exc_info.value.status_code == 500


def _upload_event(key: str) -> dict:
    return {"Records": [{"eventSource": "aws:s3", "s3": {"object": {"key": key, "size": 1}}}]}


@pytest.fixture
def event_processor(monkeypatch, service) -> StorageEventProcessor:
    processor = StorageEventProcessor(service, key_prefix="galleries")
    config = load_storage_config({"STORAGE_EVENTS_TOKEN": "hook-secret"})
    monkeypatch.setattr(storage_services, "get_storage_config", lambda: config)
    monkeypatch.setattr(storage_services, "get_storage_event_processor", lambda: processor)
    return processor


def test_storage_events_reconcile_touched_galleries(service, event_processor):
    event = _upload_event("galleries/g1/originals/new.jpg")
    event["Records"].append(
        {"eventSource": "aws:s3", "s3": {"object": {"key": "galleries/missing/originals/x.jpg"}}}
    )

    summary = storage_routes.process_storage_events(event=event, events_token="hook-secret")

    assert summary == {"reconciled": ["g1"], "missing": ["missing"], "failed": []}
    stored = service.get_record("g1")
    assert stored.originals_bytes_used == 300 * MIB
    assert stored.last_bytes_used_recalculated_at == NOW


def test_storage_events_reject_wrong_token(service, event_processor):
    with pytest.raises(HTTPException) as exc_info:
        storage_routes.process_storage_events(
            event=_upload_event("galleries/g1/originals/new.jpg"), events_token="guess"
        )

    assert exc_info.value.status_code == 401
    assert service.get_record("g1").originals_bytes_used == 200 * MIB


def test_storage_events_without_configured_token(monkeypatch, service, event_processor):
    monkeypatch.setattr(storage_services, "get_storage_config", lambda: load_storage_config({}))

    summary = storage_routes.process_storage_events(
        event=_upload_event("galleries/g1/final/o1/a.jpg"), events_token=None
    )

    assert summary["reconciled"] == ["g1"]
