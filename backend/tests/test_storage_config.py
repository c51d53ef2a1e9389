from __future__ import annotations

import pytest

from backend.app.storage import load_storage_config


def test_defaults_when_environment_is_empty():
    config = load_storage_config({})

    assert config.aggregation_backend == "index"
    assert config.galleries_table == "galleries"
    assert config.images_table == "gallery_images"
    assert config.galleries_bucket is None
    assert config.key_prefix == "galleries"
    assert config.cache_ttl_seconds == 300
    assert config.tolerance_bytes == 1024
    assert config.page_size == 1000
    assert config.max_pages == 10_000


def test_listing_backend_reads_bucket_and_overrides():
    config = load_storage_config(
        {
            "STORAGE_AGGREGATION_BACKEND": "Listing",
            "GALLERIES_BUCKET": "photo-bucket",
            "GALLERY_KEY_PREFIX": "/tenants/galleries/",
            "AWS_REGION": "eu-central-1",
            "STORAGE_CACHE_TTL_SECONDS": "60",
            "STORAGE_RECONCILE_TOLERANCE_BYTES": "0",
            "STORAGE_PAGE_SIZE": "250",
        }
    )

    assert config.aggregation_backend == "listing"
    assert config.galleries_bucket == "photo-bucket"
    assert config.key_prefix == "tenants/galleries"
    assert config.aws_region == "eu-central-1"
    assert config.cache_ttl_seconds == 60
    assert config.tolerance_bytes == 0
    assert config.page_size == 250


def test_listing_backend_requires_bucket():
    with pytest.raises(ValueError, match="GALLERIES_BUCKET"):
        load_storage_config({"STORAGE_AGGREGATION_BACKEND": "listing"})


def test_unknown_backend_is_rejected():
    with pytest.raises(ValueError, match="STORAGE_AGGREGATION_BACKEND"):
        load_storage_config({"STORAGE_AGGREGATION_BACKEND": "scan"})


@pytest.mark.parametrize(
    "name, value",
    [
        ("STORAGE_CACHE_TTL_SECONDS", "five"),
        ("STORAGE_CACHE_TTL_SECONDS", "-1"),
        ("STORAGE_PAGE_SIZE", "0"),
    ],
)
def test_invalid_integers_name_the_variable(name, value):
    with pytest.raises(ValueError, match=name):
        load_storage_config({name: value})


def test_events_token_is_optional_and_trimmed():
    assert load_storage_config({}).events_token is None
    assert load_storage_config({"STORAGE_EVENTS_TOKEN": "  hook-secret "}).events_token == "hook-secret"
