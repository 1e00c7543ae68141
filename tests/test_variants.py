from __future__ import annotations

import asyncio
from io import BytesIO

import pytest
from PIL import Image

from gallery_ingest.errors import ImageDecodeError, VariantPublishError
from gallery_ingest.hasher import compute_perceptual_hash_bytes
from gallery_ingest.storage.local import LocalStorage
from gallery_ingest.thumbnailing import build_variant_image, decode_image, encode_variant
from gallery_ingest.variants import DEFAULT_SIZES, VariantPipeline
from tests.utils.gallery import FailingPublishStorage
from tests.utils.images import jpeg_with_orientation, noise_image, png_bytes


def _open_variant(storage: LocalStorage, entry_id: str, label: str) -> Image.Image:
    image = Image.open(BytesIO(storage.variant_path(entry_id, label).read_bytes()))
    image.load()
    return image


def test_generate_publishes_every_size_and_reports_original_dimensions(tmp_path) -> None:
    storage = LocalStorage(tmp_path, cdn_base_url="/mock-cdn")
    original = png_bytes(2000, 1000, seed=11)

    result = asyncio.run(VariantPipeline(storage).generate("p1", original))

    assert result.urls == {label: f"/mock-cdn/p1/{label}.webp" for label in DEFAULT_SIZES}
    assert (result.width, result.height) == (2000, 1000)
    assert result.fingerprint == compute_perceptual_hash_bytes(original)
    assert _open_variant(storage, "p1", "lg").size == (1536, 768)
    assert _open_variant(storage, "p1", "sm").size == (256, 128)


def test_small_original_is_never_upscaled(tmp_path) -> None:
    storage = LocalStorage(tmp_path)

    asyncio.run(VariantPipeline(storage).generate("p1", png_bytes(100, 80)))

    for label in DEFAULT_SIZES:
        variant = _open_variant(storage, "p1", label)
        assert variant.format == "WEBP"
        assert variant.size == (100, 80)


def test_orientation_applied_and_exif_stripped(tmp_path) -> None:
    storage = LocalStorage(tmp_path)
    original = jpeg_with_orientation(300, 200, orientation=6)

    result = asyncio.run(VariantPipeline(storage).generate("p1", original))

    assert (result.width, result.height) == (300, 200)
    variant = _open_variant(storage, "p1", "sm")
    assert variant.size == (171, 256)
    assert "exif" not in variant.info
    assert len(variant.getexif()) == 0


def test_any_failed_publish_fails_the_whole_set(tmp_path) -> None:
    storage = FailingPublishStorage(tmp_path, failing_labels={"lg"})

    with pytest.raises(VariantPublishError) as excinfo:
        asyncio.run(VariantPipeline(storage).generate("p1", png_bytes()))

    assert excinfo.value.failed_labels == ["lg"]
    assert excinfo.value.to_payload()["failedSizes"] == ["lg"]
    assert excinfo.value.code == "publish_failed"


def test_undecodable_original_raises_decode_error(tmp_path) -> None:
    with pytest.raises(ImageDecodeError):
        asyncio.run(VariantPipeline(LocalStorage(tmp_path)).generate("p1", b"definitely not an image"))
    with pytest.raises(ImageDecodeError):
        decode_image(b"")


def test_build_variant_image_keeps_alpha_and_flattens_palette() -> None:
    rgba = noise_image(40, 40, mode="RGBA")
    palette = noise_image(40, 40).convert("P")

    assert build_variant_image(rgba, 20).mode == "RGBA"
    assert build_variant_image(palette, 20).mode == "RGB"
    assert encode_variant(rgba, 20, quality=75)[:4] == b"RIFF"
