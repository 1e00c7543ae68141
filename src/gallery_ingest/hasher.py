"""Content and perceptual hashing helpers for images."""

from __future__ import annotations

import re
from io import BytesIO
from typing import Final

import numpy as np
import xxhash
from PIL import Image

from utils.logging import get_logger

LOGGER = get_logger(__name__)

CONTENT_HASH_ALGO: Final[str] = "xxhash64-v1"
PHASH_ALGO: Final[str] = "dhash64-v1"

_DHASH_COLUMNS: Final[int] = 9
_DHASH_ROWS: Final[int] = 8
_MAX_DISTANCE: Final[int] = 64
_FINGERPRINT_RE: Final[re.Pattern[str]] = re.compile(r"^[0-9a-fA-F]{16}$")


def compute_content_hash(data: bytes) -> str:
    """Compute the 64-bit content hash for raw bytes.

    Uses ``xxhash.xxh64`` and returns a 16-character lowercase hexadecimal
    string. Staged originals are named after this digest.
    """

    return f"{xxhash.xxh64(data).intdigest():016x}"


def compute_perceptual_hash(image: Image.Image) -> str:
    """Compute the 64-bit difference hash (dHash) for an image.

    - Convert to grayscale and resize to a 9x8 grid (9 columns, 8 rows).
    - For each of the 64 cells, set a bit when its intensity is greater than
      the intensity of its right-hand neighbour.
    - Concatenate the bits row-major with the first cell as the most
      significant bit, encoded as 16 lowercase hexadecimal characters.

    Args:
        image: PIL Image instance to hash.

    Returns:
        Fingerprint as a 16-character lowercase hexadecimal string.
    """

    resample = getattr(Image, "Resampling", Image).LANCZOS
    gray = image.convert("L").resize((_DHASH_COLUMNS, _DHASH_ROWS), resample=resample)
    pixels = np.asarray(gray, dtype=np.int16)

    bits = (pixels[:, :-1] > pixels[:, 1:]).astype(np.uint8).flatten()
    value = 0
    for bit in bits:
        value = (value << 1) | int(bit)

    return f"{value:016x}"


def compute_perceptual_hash_bytes(data: bytes) -> str:
    """Decode ``data`` and return its dHash fingerprint."""

    with Image.open(BytesIO(data)) as image:
        image.load()
        return compute_perceptual_hash(image)


def is_valid_fingerprint(value: object) -> bool:
    return isinstance(value, str) and _FINGERPRINT_RE.match(value) is not None


def hamming_distance(a_hex: str, b_hex: str) -> int:
    """Compute the Hamming distance between two 64-bit fingerprints.

    Malformed input never raises; it yields the maximum distance so that it
    can never be treated as a near match.
    """

    if not is_valid_fingerprint(a_hex) or not is_valid_fingerprint(b_hex):
        LOGGER.debug("fingerprint_parse_error", extra={"a": a_hex, "b": b_hex})
        return _MAX_DISTANCE

    return int((int(a_hex, 16) ^ int(b_hex, 16)).bit_count())


__all__ = [
    "CONTENT_HASH_ALGO",
    "PHASH_ALGO",
    "compute_content_hash",
    "compute_perceptual_hash",
    "compute_perceptual_hash_bytes",
    "hamming_distance",
    "is_valid_fingerprint",
]
