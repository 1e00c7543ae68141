from __future__ import annotations

from pathlib import Path
from threading import Lock

from sqlalchemy import func, select

from gallery_ingest.catalog import SqlCatalog
from gallery_ingest.config import Settings
from gallery_ingest.db import Photo, open_catalog_session
from gallery_ingest.dupes import DuplicateResolver
from gallery_ingest.errors import StorageError
from gallery_ingest.idempotency import SqlIdempotencyStore
from gallery_ingest.ingest import IngestOrchestrator
from gallery_ingest.rate_limiter import TokenBucketLimiter
from gallery_ingest.storage.base import StoragePort
from gallery_ingest.storage.local import LocalStorage
from gallery_ingest.variants import VariantPipeline


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class FailingPublishStorage(LocalStorage):
    """Local storage whose variant publish fails for selected labels."""

    def __init__(self, root: Path, failing_labels: set[str]) -> None:
        super().__init__(root)
        self.failing_labels = failing_labels

    def publish_variant(self, entry_id: str, size_label: str, data: bytes) -> str:
        if size_label in self.failing_labels:
            raise StorageError(f"simulated outage publishing {size_label}")
        return super().publish_variant(entry_id, size_label, data)


class CountingStorage(LocalStorage):
    """Local storage that records every variant publish."""

    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self.published: list[tuple[str, str]] = []
        self._lock = Lock()

    def publish_variant(self, entry_id: str, size_label: str, data: bytes) -> str:
        with self._lock:
            self.published.append((entry_id, size_label))
        return super().publish_variant(entry_id, size_label, data)


def make_settings(tmp_path: Path) -> Settings:
    settings = Settings()
    settings.database.url = f"sqlite:///{tmp_path / 'gallery.db'}"
    settings.storage.local_root = str(tmp_path / "storage")
    return settings


def build_orchestrator(
    settings: Settings,
    *,
    catalog: SqlCatalog | None = None,
    storage: StoragePort | None = None,
    limiter: TokenBucketLimiter | None = None,
    idempotency: SqlIdempotencyStore | None = None,
) -> IngestOrchestrator:
    catalog = catalog or SqlCatalog(settings.database.url)
    storage = storage or LocalStorage(settings.storage.local_root, settings.storage.cdn_base_url)
    return IngestOrchestrator(
        catalog=catalog,
        idempotency=idempotency or SqlIdempotencyStore(settings.database.url),
        storage=storage,
        variants=VariantPipeline(storage, settings.variants.sizes, settings.variants.quality),
        limiter=limiter or TokenBucketLimiter(clock=FakeClock()),
        quotas=settings.quotas,
        rate_limit=settings.rate_limit,
        dupes=DuplicateResolver(catalog, settings.dedup.window, settings.dedup.max_distance),
    )


def count_photos(settings: Settings) -> int:
    with open_catalog_session(settings.database.url) as session:
        return int(session.execute(select(func.count(Photo.id))).scalar_one())
