"""Recent-window near-duplicate detection over perceptual fingerprints."""

from __future__ import annotations

from typing import Iterable

from gallery_ingest.catalog import CatalogEntry, CatalogPort
from gallery_ingest.errors import PersistenceError
from gallery_ingest.hasher import hamming_distance
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "dupes"})


def first_match(fingerprint: str, entries: Iterable[CatalogEntry], max_distance: int) -> str | None:
    """Return the id of the first entry within ``max_distance`` bits of ``fingerprint``."""

    for entry in entries:
        if not entry.perceptual_hash:
            continue
        distance = hamming_distance(fingerprint, entry.perceptual_hash)
        if distance <= max_distance:
            LOGGER.info("duplicate_found", extra={"entry_id": entry.id, "distance": distance})
            return entry.id
    return None


class DuplicateResolver:
    """Compare a fingerprint against the most recent live catalog entries.

    Only the newest ``window`` entries are scanned, so older near-duplicates
    are intentionally missed. The check is read-only and takes no locks; two
    near-identical uploads racing each other can both pass.
    """

    def __init__(self, catalog: CatalogPort, window: int = 100, max_distance: int = 5) -> None:
        self._catalog = catalog
        self._window = max(0, int(window))
        self._max_distance = int(max_distance)

    def find_duplicate(self, fingerprint: str | None) -> str | None:
        if not fingerprint:
            return None

        try:
            recent = self._catalog.list_recent(self._window)
        except PersistenceError as exc:
            LOGGER.error("duplicate_scan_failed", extra={"error": str(exc)})
            return None

        LOGGER.debug("duplicate_scan", extra={"candidates": len(recent), "fingerprint": fingerprint[:8]})
        return first_match(fingerprint, recent, self._max_distance)


__all__ = ["DuplicateResolver", "first_match"]
