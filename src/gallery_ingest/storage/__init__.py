"""Storage backends for originals and published variants."""

from __future__ import annotations

from gallery_ingest.config import StorageConfig
from gallery_ingest.storage.base import StoragePort
from gallery_ingest.storage.local import LocalStorage
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "storage"})


def build_storage(config: StorageConfig) -> StoragePort:
    """Resolve exactly one storage backend from ``config.driver``."""

    driver = (config.driver or "local").strip().lower()
    if driver == "local":
        LOGGER.info("storage_backend_selected", extra={"driver": driver, "root": config.local_root})
        return LocalStorage(config.local_root, config.cdn_base_url)

    if driver == "s3":
        from gallery_ingest.storage.s3 import S3Storage, build_s3_client

        LOGGER.info(
            "storage_backend_selected",
            extra={"driver": driver, "endpoint": config.s3_endpoint_url, "bucket": config.s3_variants_bucket},
        )
        return S3Storage(
            build_s3_client(config),
            originals_bucket=config.s3_originals_bucket,
            variants_bucket=config.s3_variants_bucket,
            cdn_base_url=config.s3_cdn_base_url or config.cdn_base_url,
        )

    raise ValueError(f"Unsupported storage driver: {config.driver!r}")


__all__ = ["LocalStorage", "StoragePort", "build_storage"]
