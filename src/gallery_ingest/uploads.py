"""Stage uploaded originals into storage under content-addressed keys."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath

from gallery_ingest.config import UploadConfig
from gallery_ingest.errors import ImageDecodeError, InvalidUpload
from gallery_ingest.hasher import compute_content_hash, compute_perceptual_hash
from gallery_ingest.storage.base import StoragePort
from gallery_ingest.thumbnailing import decode_image
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "uploads"})

_FORMAT_EXTENSIONS: dict[str, str] = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "WEBP": ".webp",
    "GIF": ".gif",
    "TIFF": ".tiff",
    "BMP": ".bmp",
}


@dataclass(frozen=True)
class StagedUpload:
    """Where an upload landed and what the ingest request should carry."""

    storage_key: str
    perceptual_hash: str
    size_bytes: int
    width: int
    height: int
    format: str


def _extension_for(image_format: str, filename: str | None) -> str:
    ext = _FORMAT_EXTENSIONS.get(image_format)
    if ext:
        return ext
    suffix = PurePath(filename or "").suffix.lower()
    return suffix if suffix else ".bin"


class UploadStager:
    """Validate an upload, fingerprint it and write it with ``put_original``.

    Originals are named ``<xxhash64><ext>`` so the same bytes always map to
    the same storage key, which in turn makes the implied idempotency key of
    a re-upload converge on the existing entry.
    """

    def __init__(self, storage: StoragePort, config: UploadConfig | None = None) -> None:
        self._storage = storage
        self._config = config or UploadConfig()

    def stage(self, data: bytes, filename: str | None = None) -> StagedUpload:
        if not data:
            raise InvalidUpload("upload is empty")
        if not self._config.trust_vendor_guarantees and len(data) > self._config.max_bytes:
            raise InvalidUpload(f"upload exceeds {self._config.max_bytes} bytes")

        try:
            image = decode_image(data)
        except ImageDecodeError as exc:
            raise InvalidUpload("upload is not a decodable image") from exc

        image_format = (image.format or "").upper()
        allowed = {fmt.upper() for fmt in self._config.allowed_formats}
        if image_format not in allowed:
            raise InvalidUpload(f"image format {image_format or 'unknown'} is not allowed")

        storage_key = f"{compute_content_hash(data)}{_extension_for(image_format, filename)}"
        fingerprint = compute_perceptual_hash(image)
        width, height = image.size

        self._storage.put_original(storage_key, data)
        LOGGER.info(
            "upload_staged",
            extra={"storage_key": storage_key, "bytes": len(data), "format": image_format, "source_name": filename},
        )
        return StagedUpload(
            storage_key=storage_key,
            perceptual_hash=fingerprint,
            size_bytes=len(data),
            width=width,
            height=height,
            format=image_format,
        )


__all__ = ["StagedUpload", "UploadStager"]
