"""Render and publish the fixed set of WebP variants for one original."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Mapping

from PIL import Image

from gallery_ingest.errors import VariantPublishError
from gallery_ingest.hasher import compute_perceptual_hash
from gallery_ingest.storage.base import StoragePort
from gallery_ingest.thumbnailing import decode_image, encode_variant, orient_image
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "variants"})

DEFAULT_SIZES: dict[str, int] = {"sm": 256, "md": 768, "lg": 1536}
DEFAULT_QUALITY = 75


@dataclass(frozen=True)
class VariantSet:
    """Published variant URLs keyed by size label, plus original dimensions."""

    urls: dict[str, str]
    width: int
    height: int
    fingerprint: str | None = None


class VariantPipeline:
    """Decode an original once and publish every size class concurrently.

    Either every size is published and a :class:`VariantSet` is returned, or
    :class:`VariantPublishError` names the labels that failed. Variant paths are
    deterministic per entry id, so a later retry overwrites any objects left
    behind by a failed attempt.
    """

    def __init__(
        self,
        storage: StoragePort,
        sizes: Mapping[str, int] | None = None,
        quality: int = DEFAULT_QUALITY,
    ) -> None:
        self._storage = storage
        self._sizes = dict(sizes or DEFAULT_SIZES)
        self._quality = quality
        if not self._sizes:
            raise ValueError("at least one variant size is required")

    @property
    def labels(self) -> list[str]:
        return list(self._sizes)

    async def generate(self, entry_id: str, original: bytes) -> VariantSet:
        decoded = await asyncio.to_thread(decode_image, original)
        width, height = decoded.size
        fingerprint = await asyncio.to_thread(compute_perceptual_hash, decoded)
        oriented = await asyncio.to_thread(orient_image, decoded)

        labels = list(self._sizes)
        results = await asyncio.gather(
            *(self._publish(entry_id, oriented, label, self._sizes[label]) for label in labels),
            return_exceptions=True,
        )

        urls: dict[str, str] = {}
        failed: list[str] = []
        for label, result in zip(labels, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                LOGGER.error(
                    "variant_publish_failed",
                    extra={"entry_id": entry_id, "size_label": label, "error": str(result)},
                )
                failed.append(label)
            else:
                urls[label] = result

        if failed:
            raise VariantPublishError(entry_id, failed)

        LOGGER.info("variants_published", extra={"entry_id": entry_id, "sizes": labels, "width": width, "height": height})
        return VariantSet(urls=urls, width=width, height=height, fingerprint=fingerprint)

    async def _publish(self, entry_id: str, image: Image.Image, label: str, max_side: int) -> str:
        data = await asyncio.to_thread(encode_variant, image, max_side, self._quality)
        return await asyncio.to_thread(self._storage.publish_variant, entry_id, label, data)


__all__ = ["DEFAULT_QUALITY", "DEFAULT_SIZES", "VariantPipeline", "VariantSet"]
