"""Shared image helpers for decoding originals and rendering WebP variants."""

from __future__ import annotations

from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError
from PIL.Image import Resampling

from gallery_ingest.errors import ImageDecodeError
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "thumbnailing"})


def _get_resample_filter() -> Resampling:
    """Return the preferred resample filter compatible with the current Pillow."""

    return Resampling.LANCZOS


def decode_image(data: bytes) -> Image.Image:
    """Decode ``data`` fully into memory, raising :class:`ImageDecodeError` on failure."""

    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        LOGGER.error("image_decode_error", extra={"bytes": len(data), "error": str(exc)})
        raise ImageDecodeError(f"could not decode image: {exc}") from exc
    return image


def orient_image(image: Image.Image) -> Image.Image:
    """Apply the EXIF orientation tag and drop all EXIF metadata."""

    oriented = ImageOps.exif_transpose(image) or image.copy()
    oriented.info.pop("exif", None)
    oriented.getexif().clear()
    return oriented


def build_variant_image(image: Image.Image, max_side: int) -> Image.Image:
    """Produce a resized copy of an image constrained to ``max_side`` pixels.

    Aspect ratio is preserved and images already inside the box are never
    enlarged.
    """

    safe_side = max(1, int(max_side))
    resized = image.copy()
    resized.thumbnail((safe_side, safe_side), resample=_get_resample_filter())
    if resized.mode not in {"RGB", "RGBA"}:
        has_alpha = "A" in resized.getbands() or "transparency" in resized.info
        resized = resized.convert("RGBA" if has_alpha else "RGB")
    return resized


def encode_variant(image: Image.Image, max_side: int, quality: int) -> bytes:
    """Resize ``image`` and encode it as WebP without metadata."""

    resized = build_variant_image(image, max_side)
    buffer = BytesIO()
    resized.save(buffer, format="WEBP", quality=int(quality), exif=b"")
    return buffer.getvalue()


__all__ = ["build_variant_image", "decode_image", "encode_variant", "orient_image"]
