from __future__ import annotations

from io import BytesIO

import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from gallery_ingest.config import StorageConfig
from gallery_ingest.errors import StorageError, StorageReadError
from gallery_ingest.storage import build_storage
from gallery_ingest.storage.local import LocalStorage
from gallery_ingest.storage.s3 import S3Storage, build_s3_client


def test_local_storage_round_trip(tmp_path) -> None:
    storage = LocalStorage(tmp_path, cdn_base_url="https://cdn.example/")

    storage.put_original("a.png", b"original")
    url = storage.publish_variant("p1", "sm", b"variant")

    assert storage.read_original("a.png") == b"original"
    assert url == "https://cdn.example/p1/sm.webp"
    assert (tmp_path / "photos-cdn" / "p1" / "sm.webp").read_bytes() == b"variant"
    assert not list((tmp_path / "photos-cdn" / "p1").glob("*.tmp"))


def test_local_storage_overwrites_variant_on_retry(tmp_path) -> None:
    storage = LocalStorage(tmp_path)

    storage.publish_variant("p1", "md", b"first")
    storage.publish_variant("p1", "md", b"second")

    assert storage.variant_path("p1", "md").read_bytes() == b"second"


@pytest.mark.parametrize("key", ["../escape.png", "/etc/passwd", "", "a/../../b.png"])
def test_local_storage_rejects_unsafe_keys(tmp_path, key: str) -> None:
    storage = LocalStorage(tmp_path)

    with pytest.raises(StorageError):
        storage.put_original(key, b"data")


def test_local_storage_missing_original_raises_read_error(tmp_path) -> None:
    with pytest.raises(StorageReadError):
        LocalStorage(tmp_path).read_original("missing.png")


def test_local_delete_all_removes_original_and_variants(tmp_path) -> None:
    storage = LocalStorage(tmp_path)
    storage.put_original("a.png", b"original")
    storage.publish_variant("p1", "sm", b"variant")

    storage.delete_all("p1", "a.png")

    assert not (tmp_path / "photos-orig" / "a.png").exists()
    assert not (tmp_path / "photos-cdn" / "p1").exists()


def test_build_storage_selects_driver(tmp_path) -> None:
    local = build_storage(StorageConfig(driver="local", local_root=str(tmp_path)))
    assert isinstance(local, LocalStorage)

    with pytest.raises(ValueError):
        build_storage(StorageConfig(driver="ftp"))


@pytest.fixture()
def s3_stub():
    client = build_s3_client(
        StorageConfig(driver="s3", s3_region="us-east-1", s3_access_key_id="test", s3_secret_access_key="test")
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


def _s3_storage(client) -> S3Storage:
    return S3Storage(client, originals_bucket="orig-bucket", variants_bucket="cdn-bucket", cdn_base_url="https://cdn.example")


def test_s3_publish_variant_uses_immutable_cache_headers(s3_stub) -> None:
    client, stubber = s3_stub
    stubber.add_response(
        "put_object",
        {},
        {
            "Bucket": "cdn-bucket",
            "Key": "cdn/p1/lg.webp",
            "Body": b"webp",
            "ContentType": "image/webp",
            "CacheControl": "public, max-age=31536000, immutable",
        },
    )

    url = _s3_storage(client).publish_variant("p1", "lg", b"webp")

    assert url == "https://cdn.example/cdn/p1/lg.webp"


def test_s3_put_and_read_original(s3_stub) -> None:
    client, stubber = s3_stub
    stubber.add_response(
        "put_object",
        {},
        {
            "Bucket": "orig-bucket",
            "Key": "orig/a.png",
            "Body": b"png",
            "ContentType": "image/png",
            "ContentDisposition": 'inline; filename="a.png"',
        },
    )
    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(BytesIO(b"png"), 3)},
        {"Bucket": "orig-bucket", "Key": "orig/a.png"},
    )
    storage = _s3_storage(client)

    storage.put_original("a.png", b"png")

    assert storage.read_original("a.png") == b"png"


def test_s3_client_errors_become_storage_errors(s3_stub) -> None:
    client, stubber = s3_stub
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
    stubber.add_client_error("put_object", service_error_code="SlowDown", http_status_code=503)
    storage = _s3_storage(client)

    with pytest.raises(StorageReadError):
        storage.read_original("missing.png")
    with pytest.raises(StorageError):
        storage.publish_variant("p1", "sm", b"webp")


def test_s3_delete_all_removes_variants_and_original(s3_stub) -> None:
    client, stubber = s3_stub
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": "cdn/p1/sm.webp"}, {"Key": "cdn/p1/md.webp"}]},
        {"Bucket": "cdn-bucket", "Prefix": "cdn/p1/"},
    )
    stubber.add_response(
        "delete_objects",
        {},
        {
            "Bucket": "cdn-bucket",
            "Delete": {"Objects": [{"Key": "cdn/p1/sm.webp"}, {"Key": "cdn/p1/md.webp"}], "Quiet": True},
        },
    )
    stubber.add_response("delete_object", {}, {"Bucket": "orig-bucket", "Key": "orig/a.png"})

    _s3_storage(client).delete_all("p1", "a.png")
