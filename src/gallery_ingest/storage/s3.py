"""S3-compatible storage backend (Cloudflare R2, MinIO, AWS S3) built on boto3."""

from __future__ import annotations

import mimetypes
from typing import Any

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from gallery_ingest.config import StorageConfig
from gallery_ingest.errors import StorageError, StorageReadError
from gallery_ingest.storage.base import VARIANT_CACHE_CONTROL, VARIANT_CONTENT_TYPE, variant_name
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "storage_s3"})

ORIGINALS_PREFIX = "orig"
VARIANTS_PREFIX = "cdn"


def build_s3_client(config: StorageConfig) -> Any:
    """Create a boto3 S3 client for the configured endpoint."""

    kwargs: dict[str, Any] = {
        "region_name": config.s3_region or "auto",
        "config": BotoConfig(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            request_checksum_calculation="when_required",
            response_checksum_validation="when_required",
        ),
    }
    if config.s3_endpoint_url:
        kwargs["endpoint_url"] = config.s3_endpoint_url
    if config.s3_access_key_id and config.s3_secret_access_key:
        kwargs["aws_access_key_id"] = config.s3_access_key_id
        kwargs["aws_secret_access_key"] = config.s3_secret_access_key
    return boto3.client("s3", **kwargs)


class S3Storage:
    """Originals and variants in two buckets behind a CDN.

    Originals are written to ``orig/<key>`` in the private bucket. Variants go
    to ``cdn/<entry id>/<label>.webp`` in the public bucket with immutable
    cache headers, and their URLs are ``<cdn base>/cdn/<entry id>/<label>.webp``.
    """

    def __init__(self, client: Any, originals_bucket: str, variants_bucket: str, cdn_base_url: str) -> None:
        if not originals_bucket or not variants_bucket:
            raise ValueError("S3 storage requires both an originals bucket and a variants bucket")
        self._client = client
        self._originals_bucket = originals_bucket
        self._variants_bucket = variants_bucket
        self._cdn_base_url = cdn_base_url.rstrip("/")

    @staticmethod
    def original_object_key(key: str) -> str:
        return f"{ORIGINALS_PREFIX}/{key}"

    @staticmethod
    def variant_object_key(entry_id: str, size_label: str) -> str:
        return f"{VARIANTS_PREFIX}/{entry_id}/{variant_name(size_label)}"

    def put_original(self, key: str, data: bytes) -> None:
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        try:
            self._client.put_object(
                Bucket=self._originals_bucket,
                Key=self.original_object_key(key),
                Body=data,
                ContentType=content_type,
                ContentDisposition=f'inline; filename="{key}"',
            )
        except (ClientError, BotoCoreError) as exc:
            LOGGER.error("s3_put_original_error", extra={"key": key, "error": str(exc)})
            raise StorageError(f"failed to write original {key}") from exc

    def read_original(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._originals_bucket, Key=self.original_object_key(key))
            return response["Body"].read()
        except (ClientError, BotoCoreError) as exc:
            LOGGER.error("s3_read_original_error", extra={"key": key, "error": str(exc)})
            raise StorageReadError(f"failed to read original {key}") from exc

    def publish_variant(self, entry_id: str, size_label: str, data: bytes) -> str:
        object_key = self.variant_object_key(entry_id, size_label)
        try:
            self._client.put_object(
                Bucket=self._variants_bucket,
                Key=object_key,
                Body=data,
                ContentType=VARIANT_CONTENT_TYPE,
                CacheControl=VARIANT_CACHE_CONTROL,
            )
        except (ClientError, BotoCoreError) as exc:
            LOGGER.error(
                "s3_publish_variant_error",
                extra={"entry_id": entry_id, "size_label": size_label, "error": str(exc)},
            )
            raise StorageError(f"failed to publish {size_label} for {entry_id}") from exc
        return f"{self._cdn_base_url}/{object_key}"

    def delete_all(self, entry_id: str, original_key: str) -> None:
        prefix = f"{VARIANTS_PREFIX}/{entry_id}/"
        try:
            listing = self._client.list_objects_v2(Bucket=self._variants_bucket, Prefix=prefix)
            objects = [{"Key": item["Key"]} for item in listing.get("Contents", [])]
            if objects:
                self._client.delete_objects(Bucket=self._variants_bucket, Delete={"Objects": objects, "Quiet": True})
            self._client.delete_object(Bucket=self._originals_bucket, Key=self.original_object_key(original_key))
        except (ClientError, BotoCoreError) as exc:
            LOGGER.error("s3_delete_error", extra={"entry_id": entry_id, "error": str(exc)})
            raise StorageError(f"failed to delete objects for {entry_id}") from exc

    def variants_base_url(self) -> str:
        return self._cdn_base_url


__all__ = ["S3Storage", "build_s3_client"]
