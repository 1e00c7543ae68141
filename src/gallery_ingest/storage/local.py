"""Filesystem storage backend used in development and tests."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath

from gallery_ingest.errors import StorageError, StorageReadError
from gallery_ingest.storage.base import variant_name
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "storage_local"})

ORIGINALS_DIR = "photos-orig"
VARIANTS_DIR = "photos-cdn"


def _validate_relative(value: str, kind: str) -> PurePosixPath:
    candidate = PurePosixPath(value.replace("\\", "/"))
    if not value or candidate.is_absolute() or ".." in candidate.parts:
        raise StorageError(f"invalid {kind}: {value!r}")
    return candidate


def _validate_segment(value: str, kind: str) -> str:
    if len(_validate_relative(value, kind).parts) != 1:
        raise StorageError(f"invalid {kind}: {value!r}")
    return value


def _atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to a sibling temp file and rename it into place."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class LocalStorage:
    """Store originals and variants below ``root``.

    Originals live under ``<root>/photos-orig/<key>`` and variants under
    ``<root>/photos-cdn/<entry id>/<label>.webp``; variant URLs are built from
    ``cdn_base_url`` so a static route or reverse proxy can serve them.
    """

    def __init__(self, root: str | Path, cdn_base_url: str = "/mock-cdn") -> None:
        self.root = Path(root).expanduser().resolve()
        self._cdn_base_url = cdn_base_url.rstrip("/")

    def original_path(self, key: str) -> Path:
        return self.root / ORIGINALS_DIR / Path(*_validate_relative(key, "storage key").parts)

    def variant_path(self, entry_id: str, size_label: str) -> Path:
        entry_dir = _validate_segment(entry_id, "entry id")
        return self.root / VARIANTS_DIR / entry_dir / variant_name(_validate_segment(size_label, "size label"))

    def put_original(self, key: str, data: bytes) -> None:
        path = self.original_path(key)
        try:
            _atomic_write(path, data)
        except OSError as exc:
            LOGGER.error("original_write_error", extra={"key": key, "error": str(exc)})
            raise StorageError(f"failed to write original {key}") from exc

    def read_original(self, key: str) -> bytes:
        path = self.original_path(key)
        try:
            return path.read_bytes()
        except OSError as exc:
            LOGGER.error("original_read_error", extra={"key": key, "error": str(exc)})
            raise StorageReadError(f"failed to read original {key}") from exc

    def publish_variant(self, entry_id: str, size_label: str, data: bytes) -> str:
        path = self.variant_path(entry_id, size_label)
        try:
            _atomic_write(path, data)
        except OSError as exc:
            LOGGER.error(
                "variant_write_error",
                extra={"entry_id": entry_id, "size_label": size_label, "error": str(exc)},
            )
            raise StorageError(f"failed to publish {size_label} for {entry_id}") from exc
        return f"{self._cdn_base_url}/{entry_id}/{variant_name(size_label)}"

    def delete_all(self, entry_id: str, original_key: str) -> None:
        variants_dir = self.root / VARIANTS_DIR / _validate_segment(entry_id, "entry id")
        original = self.original_path(original_key)
        try:
            original.unlink(missing_ok=True)
            if variants_dir.exists():
                shutil.rmtree(variants_dir)
        except OSError as exc:
            LOGGER.error("storage_delete_error", extra={"entry_id": entry_id, "error": str(exc)})
            raise StorageError(f"failed to delete objects for {entry_id}") from exc

    def variants_base_url(self) -> str:
        return self._cdn_base_url


__all__ = ["LocalStorage", "ORIGINALS_DIR", "VARIANTS_DIR"]
