"""Write-once idempotency keys mapping ingest requests to candidate photo ids."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

import xxhash
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from gallery_ingest.db import IngestKey, open_catalog_session
from gallery_ingest.db_helpers import dialect_insert
from gallery_ingest.errors import IdempotencyUnavailable
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "idempotency"})

DEFAULT_LEASE_SECONDS = 120.0


class KeyOutcome(str, Enum):
    CREATED = "created"
    RECLAIMED = "reclaimed"
    EXISTS = "exists"


@dataclass(frozen=True)
class KeyResolution:
    outcome: KeyOutcome
    bound_id: str

    @property
    def created(self) -> bool:
        return self.outcome is KeyOutcome.CREATED

    @property
    def holds_lease(self) -> bool:
        """True when this caller may run the pipeline for ``bound_id``."""

        return self.outcome in (KeyOutcome.CREATED, KeyOutcome.RECLAIMED)


def derive_idempotency_key(storage_key: str, token: str | None = None, actor_id: str | None = None) -> str:
    """Build the idempotency key for a request.

    An explicit client token is scoped to the actor that sent it. Without a
    token the storage key of the original is used, so retries of the same
    upload converge even when the client does not cooperate.
    """

    cleaned = token.strip() if isinstance(token, str) else ""
    if cleaned:
        return f"req:{actor_id or 'anonymous'}:{cleaned}"
    return f"orig:{storage_key}"


def candidate_id_for_key(key: str) -> str:
    """Deterministic 32-character id derived from an idempotency key."""

    return xxhash.xxh3_128_hexdigest(key.encode("utf-8"))


class IdempotencyPort(Protocol):
    def resolve(self, key: str, candidate_id: str) -> KeyResolution: ...

    def release(self, key: str) -> None: ...


class SqlIdempotencyStore:
    """Resolve idempotency keys with a single atomic conditional insert.

    The first writer for a key binds its candidate id and takes the pipeline
    lease; every later caller reads that binding back. A later caller takes
    the lease over only when it has been released or has expired, which is
    how a retry after a failed pipeline gets to run again. Bindings are never
    overwritten or removed.
    """

    def __init__(
        self,
        target: str | Path,
        clock: Callable[[], float] | None = None,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
    ) -> None:
        if lease_seconds <= 0:
            raise ValueError("lease_seconds must be positive")
        self._target = target
        self._clock = clock or time.time
        self._lease_seconds = lease_seconds

    def resolve(self, key: str, candidate_id: str) -> KeyResolution:
        if not key:
            raise ValueError("idempotency key cannot be empty")

        now = self._clock()
        lease_until = now + self._lease_seconds
        try:
            with open_catalog_session(self._target) as session:
                stmt = (
                    dialect_insert(session, IngestKey)
                    .values(key=key, candidate_id=candidate_id, created_at=now, lease_expires_at=lease_until)
                    .on_conflict_do_nothing(index_elements=[IngestKey.key])
                )
                created = session.execute(stmt).rowcount == 1
                reclaimed = False
                if not created:
                    takeover = (
                        update(IngestKey)
                        .where(IngestKey.key == key)
                        .where(or_(IngestKey.lease_expires_at.is_(None), IngestKey.lease_expires_at <= now))
                        .values(lease_expires_at=lease_until)
                    )
                    reclaimed = session.execute(takeover).rowcount == 1
                session.commit()

                bound_id = session.execute(
                    select(IngestKey.candidate_id).where(IngestKey.key == key)
                ).scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            LOGGER.error("idempotency_resolve_error", extra={"key": key, "error": str(exc)})
            raise IdempotencyUnavailable(f"idempotency store unavailable for {key}") from exc

        if bound_id is None:
            raise IdempotencyUnavailable(f"idempotency binding missing for {key}")

        if created:
            outcome = KeyOutcome.CREATED
        elif reclaimed:
            outcome = KeyOutcome.RECLAIMED
        else:
            outcome = KeyOutcome.EXISTS
        LOGGER.debug("idempotency_resolved", extra={"key": key, "outcome": outcome.value, "bound_id": bound_id})
        return KeyResolution(outcome=outcome, bound_id=bound_id)

    def release(self, key: str) -> None:
        """Give up the pipeline lease on ``key`` so the next request can run."""

        try:
            with open_catalog_session(self._target) as session:
                session.execute(update(IngestKey).where(IngestKey.key == key).values(lease_expires_at=None))
                session.commit()
        except (SQLAlchemyError, OSError) as exc:
            LOGGER.error("idempotency_release_error", extra={"key": key, "error": str(exc)})
            raise IdempotencyUnavailable(f"idempotency store unavailable for {key}") from exc


__all__ = [
    "DEFAULT_LEASE_SECONDS",
    "IdempotencyPort",
    "KeyOutcome",
    "KeyResolution",
    "SqlIdempotencyStore",
    "candidate_id_for_key",
    "derive_idempotency_key",
]
