"""Construct the process-wide collaborators from settings."""

from __future__ import annotations

from dataclasses import dataclass

from gallery_ingest.catalog import SqlCatalog
from gallery_ingest.config import Settings, load_settings
from gallery_ingest.dupes import DuplicateResolver
from gallery_ingest.idempotency import SqlIdempotencyStore
from gallery_ingest.ingest import IngestOrchestrator
from gallery_ingest.moderation import ModerationService
from gallery_ingest.rate_limiter import TokenBucketLimiter
from gallery_ingest.storage import StoragePort, build_storage
from gallery_ingest.uploads import UploadStager
from gallery_ingest.variants import VariantPipeline
from utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    catalog: SqlCatalog
    idempotency: SqlIdempotencyStore
    storage: StoragePort
    limiter: TokenBucketLimiter
    orchestrator: IngestOrchestrator
    moderation: ModerationService
    uploads: UploadStager


def build_services(
    settings: Settings | None = None,
    *,
    storage: StoragePort | None = None,
    limiter: TokenBucketLimiter | None = None,
) -> Services:
    """Wire one instance of every collaborator.

    ``storage`` and ``limiter`` may be injected (tests use a failing storage
    double or a simulated clock); otherwise they are built from settings.
    """

    settings = settings or load_settings()
    catalog = SqlCatalog(settings.database.url)
    idempotency = SqlIdempotencyStore(settings.database.url, lease_seconds=settings.idempotency.lease_seconds)
    storage = storage or build_storage(settings.storage)
    limiter = limiter or TokenBucketLimiter()

    dupes = None
    if settings.dedup.enabled:
        dupes = DuplicateResolver(catalog, window=settings.dedup.window, max_distance=settings.dedup.max_distance)

    orchestrator = IngestOrchestrator(
        catalog=catalog,
        idempotency=idempotency,
        storage=storage,
        variants=VariantPipeline(storage, settings.variants.sizes, settings.variants.quality),
        limiter=limiter,
        quotas=settings.quotas,
        rate_limit=settings.rate_limit,
        dupes=dupes,
    )

    LOGGER.info(
        "services_built",
        extra={"database": settings.database.url, "storage_driver": settings.storage.driver, "dedup": settings.dedup.enabled},
    )
    return Services(
        settings=settings,
        catalog=catalog,
        idempotency=idempotency,
        storage=storage,
        limiter=limiter,
        orchestrator=orchestrator,
        moderation=ModerationService(catalog, storage),
        uploads=UploadStager(storage, settings.uploads),
    )


__all__ = ["Services", "build_services"]
