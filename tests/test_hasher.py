"""Unit tests for fingerprint and content hashing helpers."""

from __future__ import annotations

import xxhash

from gallery_ingest.hasher import (
    compute_content_hash,
    compute_perceptual_hash,
    compute_perceptual_hash_bytes,
    hamming_distance,
    is_valid_fingerprint,
)
from tests.utils.images import encode, grid_image, noise_image

_INCREASING = [10, 20, 30, 40, 50, 60, 70, 80, 90]
_DECREASING = list(reversed(_INCREASING))


def test_dhash_sets_bit_when_cell_brighter_than_right_neighbour() -> None:
    rows = [_DECREASING] + [_INCREASING] * 7

    assert compute_perceptual_hash(grid_image(rows)) == "ff00000000000000"


def test_dhash_is_row_major_with_first_cell_most_significant() -> None:
    last_row = [_INCREASING[:7] + [200, 100]]
    rows = [_INCREASING] * 7 + last_row

    assert compute_perceptual_hash(grid_image(rows)) == "0000000000000001"


def test_dhash_uniform_image_is_zero() -> None:
    rows = [[128] * 9 for _ in range(8)]

    assert compute_perceptual_hash(grid_image(rows)) == "0" * 16


def test_dhash_from_bytes_matches_image_hash() -> None:
    image = noise_image(120, 90, seed=3)

    fingerprint = compute_perceptual_hash_bytes(encode(image))

    assert fingerprint == compute_perceptual_hash(image)
    assert is_valid_fingerprint(fingerprint)


def test_hamming_symmetry_and_identity() -> None:
    a = compute_perceptual_hash(noise_image(seed=1))
    b = compute_perceptual_hash(noise_image(seed=2))

    assert hamming_distance(a, a) == 0
    assert hamming_distance(a, b) == hamming_distance(b, a)
    assert hamming_distance("ff00000000000000", "fe00000000000000") == 1
    assert hamming_distance("0" * 16, "f" * 16) == 64


def test_hamming_malformed_input_never_matches() -> None:
    assert hamming_distance("not-a-hash", "0" * 16) == 64
    assert hamming_distance("0" * 15, "0" * 16) == 64
    assert hamming_distance("0" * 16, "abcdef012345678g") == 64


def test_hamming_compares_hex_case_insensitively() -> None:
    assert is_valid_fingerprint("ABCDEF0123456789")
    assert hamming_distance("ABCDEF0123456789", "abcdef0123456789") == 0
    assert hamming_distance("FF00000000000000", "fe00000000000000") == 1


def test_content_hash_is_xxhash64_hex() -> None:
    data = b"gallery-original"

    assert compute_content_hash(data) == f"{xxhash.xxh64(data).intdigest():016x}"
    assert len(compute_content_hash(b"")) == 16
