"""Storage port shared by the local and S3-compatible backends."""

from __future__ import annotations

from typing import Protocol

VARIANT_EXTENSION = ".webp"
VARIANT_CONTENT_TYPE = "image/webp"
VARIANT_CACHE_CONTROL = "public, max-age=31536000, immutable"


class StoragePort(Protocol):
    """Blocking object-store operations; callers run them in worker threads."""

    def put_original(self, key: str, data: bytes) -> None: ...

    def read_original(self, key: str) -> bytes: ...

    def publish_variant(self, entry_id: str, size_label: str, data: bytes) -> str: ...

    def delete_all(self, entry_id: str, original_key: str) -> None: ...

    def variants_base_url(self) -> str: ...


def variant_name(size_label: str) -> str:
    return f"{size_label}{VARIANT_EXTENSION}"


__all__ = ["StoragePort", "VARIANT_CACHE_CONTROL", "VARIANT_CONTENT_TYPE", "VARIANT_EXTENSION", "variant_name"]
