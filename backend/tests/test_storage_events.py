from __future__ import annotations

import json
from typing import List

import pytest

from backend.app.storage import (
    GalleryNotFoundError,
    StorageEventProcessor,
    extract_object_keys,
    gallery_ids_from_keys,
)
from backend.app.storage.events import gallery_id_from_key


def _s3_record(key: str) -> dict:
    return {"eventSource": "aws:s3", "s3": {"object": {"key": key, "size": 10}}}


class RecordingService:
    def __init__(self, missing=(), failing=()) -> None:
        self.calls: List[tuple] = []
        self._missing = set(missing)
        self._failing = set(failing)

    def get_storage(self, gallery_id: str, force_recalc: bool = False, **kwargs):
        self.calls.append((gallery_id, force_recalc))
        if gallery_id in self._missing:
            raise GalleryNotFoundError(gallery_id)
        if gallery_id in self._failing:
            raise RuntimeError("backend unavailable")
        return None


def test_extracts_keys_from_direct_notifications():
    event = {"Records": [_s3_record("galleries/g1/originals/a+b%281%29.jpg")]}

    assert extract_object_keys(event) == ["galleries/g1/originals/a b(1).jpg"]


def test_extracts_keys_from_sqs_wrapped_sns_notifications():
    s3_event = {"Records": [_s3_record("galleries/g1/final/o1/a.jpg")]}
    sns_envelope = {"Type": "Notification", "Message": json.dumps(s3_event)}
    event = {
        "Records": [
            {"eventSource": "aws:sqs", "body": json.dumps(sns_envelope)},
            {"eventSource": "aws:sqs", "body": json.dumps(_s3_record("galleries/g2/originals/x.jpg"))},
        ]
    }

    assert extract_object_keys(event) == [
        "galleries/g1/final/o1/a.jpg",
        "galleries/g2/originals/x.jpg",
    ]


def test_unparseable_queue_bodies_are_skipped():
    event = {
        "Records": [
            {"eventSource": "aws:sqs", "body": "not json"},
            {"eventSource": "aws:sqs", "body": json.dumps({"unexpected": True})},
            {"eventSource": "aws:sqs", "body": json.dumps(_s3_record("galleries/g3/originals/y.jpg"))},
        ]
    }

    assert extract_object_keys(event) == ["galleries/g3/originals/y.jpg"]


@pytest.mark.parametrize(
    "key, expected",
    [
        ("galleries/g1/originals/a.jpg", "g1"),
        ("galleries/g1/final/o1/a.jpg", "g1"),
        ("galleries/g1/previews/a.jpg", None),
        ("galleries/g1/final/o1/thumbs/a.jpg", None),
        ("galleries/g1/bigthumbs/a.jpg", None),
        ("galleries/g1/originals/", None),
        ("galleries/g1/cover.jpg", None),
        ("other/g1/originals/a.jpg", None),
    ],
)
def test_gallery_id_from_key(key, expected):
    assert gallery_id_from_key(key) == expected


def test_gallery_ids_are_deduplicated_in_order():
    keys = [
        "galleries/g2/originals/a.jpg",
        "galleries/g1/originals/a.jpg",
        "galleries/g2/final/o/a.jpg",
    ]

    assert gallery_ids_from_keys(keys) == ["g2", "g1"]


def test_processor_forces_one_reconciliation_per_gallery():
    service = RecordingService()
    processor = StorageEventProcessor(service, key_prefix="galleries")
    event = {
        "Records": [
            _s3_record("galleries/g1/originals/a.jpg"),
            _s3_record("galleries/g1/originals/b.jpg"),
            _s3_record("galleries/g2/final/o1/c.jpg"),
            _s3_record("galleries/g3/previews/c.jpg"),
        ]
    }

    summary = processor.process(event)

    assert service.calls == [("g1", True), ("g2", True)]
    assert summary.reconciled == ["g1", "g2"]


def test_processor_isolates_per_gallery_failures():
    service = RecordingService(missing={"g1"}, failing={"g2"})
    processor = StorageEventProcessor(service)

    summary = processor.reconcile_galleries(["g1", "g2", "g3"])

    assert summary.to_dict() == {"reconciled": ["g3"], "missing": ["g1"], "failed": ["g2"]}
    assert [call[0] for call in service.calls] == ["g1", "g2", "g3"]
