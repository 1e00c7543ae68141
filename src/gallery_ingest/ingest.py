"""Ingest orchestrator composing admission, idempotency, quota, dedup and variants.

One call to :meth:`IngestOrchestrator.ingest` handles one request end to end:

1. Admission: storage key present, session present, rate limit, role.
2. Idempotency: derive the key and its candidate id and resolve it. A row that
   already exists for the bound id (or for the same original, when the caller
   owns it) is returned as is. Only the request holding the key's pipeline
   lease goes on; any other request, in this process or another one sharing
   the database, gets ``PROCESSING``. The lease is released when the request
   finishes, so a retry after a failure runs the pipeline again.
3. Quota, then the recent-window duplicate check.
4. Read the original, publish every variant, insert the catalog row and
   append the ``INGESTED`` audit entry.

Nothing is written to the catalog until every variant has been published.
Errors raised by collaborators are typed; this module is the one place that
turns them into response payloads.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from gallery_ingest.catalog import AuditAction, AuditEntry, CatalogEntry, CatalogPort, PhotoStatus
from gallery_ingest.config import QuotaConfig, RateLimitConfig
from gallery_ingest.dupes import DuplicateResolver
from gallery_ingest.errors import (
    AuthRequired,
    ForbiddenRole,
    GalleryIngestError,
    IdempotencyUnavailable,
    InvalidRequest,
    RateLimited,
)
from gallery_ingest.hasher import is_valid_fingerprint
from gallery_ingest.idempotency import IdempotencyPort, candidate_id_for_key, derive_idempotency_key
from gallery_ingest.quotas import evaluate_quota, quota_for_role, snapshot_usage
from gallery_ingest.rate_limiter import TokenBucketLimiter
from gallery_ingest.roles import Actor, Role
from gallery_ingest.session import SessionProvider
from gallery_ingest.storage.base import StoragePort
from gallery_ingest.variants import VariantPipeline
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "ingest"})

STATUS_DUPLICATE = "DUPLICATE"
STATUS_PROCESSING = "PROCESSING"
_MINUTE_MS = 60_000


@dataclass(frozen=True)
class IngestRequest:
    storage_key: str
    perceptual_hash: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class IngestResponse:
    http_status: int
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.http_status < 400


def entry_payload(entry: CatalogEntry) -> dict[str, Any]:
    """Public response body for a persisted entry."""

    return {
        "id": entry.id,
        "status": entry.status.value,
        "sizes": dict(entry.variant_urls),
        "width": entry.width,
        "height": entry.height,
    }


def _normalize_fingerprint(value: Any) -> str | None:
    """Lowercase a client fingerprint; anything that is not a string counts as absent."""

    if not isinstance(value, str):
        if value is not None:
            LOGGER.warning("fingerprint_ignored", extra={"value_type": type(value).__name__})
        return None
    return value.strip().lower() or None


class IngestOrchestrator:
    """Run the ingest state machine for one request at a time per task."""

    def __init__(
        self,
        *,
        catalog: CatalogPort,
        idempotency: IdempotencyPort,
        storage: StoragePort,
        variants: VariantPipeline,
        limiter: TokenBucketLimiter,
        quotas: QuotaConfig,
        rate_limit: RateLimitConfig,
        dupes: DuplicateResolver | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._catalog = catalog
        self._idempotency = idempotency
        self._storage = storage
        self._variants = variants
        self._limiter = limiter
        self._quotas = quotas
        self._rate_limit = rate_limit
        self._dupes = dupes
        self._clock = clock or time.time

    async def ingest(self, request: IngestRequest, session: SessionProvider) -> IngestResponse:
        try:
            return await self._run(request, session)
        except GalleryIngestError as exc:
            log = LOGGER.warning if exc.status < 500 else LOGGER.error
            log(
                "ingest_rejected",
                extra={"storage_key": request.storage_key, "code": exc.code, "status": exc.status, "error": str(exc)},
            )
            return IngestResponse(http_status=exc.status, payload=exc.to_payload())

    # --- state machine ---------------------------------------------------------

    async def _run(self, request: IngestRequest, session: SessionProvider) -> IngestResponse:
        if not isinstance(request.storage_key, str) or not request.storage_key.strip():
            raise InvalidRequest("storage key is required")
        if request.idempotency_key is not None and not isinstance(request.idempotency_key, str):
            raise InvalidRequest("idempotency key must be a string")
        storage_key = request.storage_key.strip()

        actor = session.get_actor()
        if actor is None:
            raise AuthRequired("a session is required to ingest photos")
        self._admit(actor)

        key = derive_idempotency_key(storage_key, request.idempotency_key, actor.id)
        entry_id, holds_lease = await self._resolve(key, candidate_id_for_key(key))
        try:
            existing = await asyncio.to_thread(self._catalog.get_by_id, entry_id)
            if existing is None:
                existing = await self._find_own_original(storage_key, actor)
            if existing is not None:
                LOGGER.info("ingest_replayed", extra={"entry_id": existing.id, "key": key})
                return IngestResponse(http_status=201, payload=entry_payload(existing))

            if not holds_lease:
                LOGGER.info("ingest_in_progress", extra={"entry_id": entry_id, "key": key})
                return IngestResponse(
                    http_status=202,
                    payload={"id": entry_id, "status": STATUS_PROCESSING, "sizes": {}},
                )

            return await self._process(entry_id, storage_key, request, actor)
        finally:
            if holds_lease:
                await self._release(key)

    def _admit(self, actor: Actor) -> None:
        quota = quota_for_role(actor.role, self._quotas)
        if quota.max_ingests_per_minute > 0:
            capacity, refill_per_ms = quota.max_ingests_per_minute, _MINUTE_MS
        else:
            capacity, refill_per_ms = self._rate_limit.capacity, self._rate_limit.refill_per_ms

        limiter_key = f"ingest:{actor.id}"
        if not self._limiter.allow(limiter_key, capacity, refill_per_ms):
            raise RateLimited(limiter_key)
        if actor.role is Role.VIEWER:
            raise ForbiddenRole(actor.role.value)

    async def _resolve(self, key: str, candidate_id: str) -> tuple[str, bool]:
        """Return the bound entry id and whether this request holds the pipeline lease."""

        try:
            resolution = await asyncio.to_thread(self._idempotency.resolve, key, candidate_id)
        except IdempotencyUnavailable as exc:
            LOGGER.warning("idempotency_unavailable", extra={"key": key, "error": str(exc)})
            return candidate_id, True
        return resolution.bound_id, resolution.holds_lease

    async def _release(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._idempotency.release, key)
        except IdempotencyUnavailable as exc:
            LOGGER.warning("idempotency_release_failed", extra={"key": key, "error": str(exc)})

    async def _find_own_original(self, storage_key: str, actor: Actor) -> CatalogEntry | None:
        entry = await asyncio.to_thread(self._catalog.get_by_original_key, storage_key)
        if entry is None or entry.owner_id != actor.id or entry.is_deleted:
            return None
        return entry

    async def _process(
        self,
        entry_id: str,
        storage_key: str,
        request: IngestRequest,
        actor: Actor,
    ) -> IngestResponse:
        quota = quota_for_role(actor.role, self._quotas)
        usage = await asyncio.to_thread(snapshot_usage, self._catalog, actor.id, self._clock())
        evaluate_quota(actor.role, usage, quota)

        fingerprint = _normalize_fingerprint(request.perceptual_hash)
        if fingerprint is not None and self._dupes is not None:
            duplicate_of = await asyncio.to_thread(self._dupes.find_duplicate, fingerprint)
            if duplicate_of is not None:
                LOGGER.info("ingest_duplicate", extra={"entry_id": entry_id, "duplicate_of": duplicate_of})
                return IngestResponse(
                    http_status=200,
                    payload={"id": entry_id, "status": STATUS_DUPLICATE, "sizes": {}, "duplicateOf": duplicate_of},
                )

        original = await asyncio.to_thread(self._storage.read_original, storage_key)
        variant_set = await self._variants.generate(entry_id, original)

        if not is_valid_fingerprint(fingerprint):
            fingerprint = variant_set.fingerprint

        now = self._clock()
        entry = CatalogEntry(
            id=entry_id,
            status=PhotoStatus.APPROVED,
            original_key=storage_key,
            variant_urls=variant_set.urls,
            width=variant_set.width,
            height=variant_set.height,
            size_bytes=len(original),
            created_at=now,
            updated_at=now,
            perceptual_hash=fingerprint,
            owner_id=actor.id,
        )
        result = await asyncio.to_thread(self._catalog.insert, entry)
        if result.created:
            await self._append_audit(AuditEntry(entry_id=entry_id, action=AuditAction.INGESTED, actor=actor.id, at=now))
            LOGGER.info(
                "ingest_completed",
                extra={"entry_id": entry_id, "actor_id": actor.id, "bytes": len(original), "sizes": sorted(entry.variant_urls)},
            )
        else:
            LOGGER.info("ingest_insert_lost_race", extra={"entry_id": entry_id})

        return IngestResponse(http_status=201, payload=entry_payload(result.entry))

    async def _append_audit(self, entry: AuditEntry) -> None:
        try:
            await asyncio.to_thread(self._catalog.append_audit, entry)
        except Exception as exc:
            LOGGER.warning(
                "audit_append_failed",
                extra={"entry_id": entry.entry_id, "action": entry.action.value, "error": str(exc)},
            )


__all__ = [
    "IngestOrchestrator",
    "IngestRequest",
    "IngestResponse",
    "STATUS_DUPLICATE",
    "STATUS_PROCESSING",
    "entry_payload",
]
