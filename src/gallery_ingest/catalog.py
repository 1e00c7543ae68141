"""Catalog domain types and the SQLAlchemy-backed catalog repository."""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gallery_ingest.db import Account, AuditLog, Photo, open_catalog_session
from gallery_ingest.db_helpers import dialect_insert, is_foreign_key_violation
from gallery_ingest.errors import AccountRequired, PersistenceError
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "catalog"})


class PhotoStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PRIVATE = "PRIVATE"


class AuditAction(str, Enum):
    INGESTED = "INGESTED"
    RESTORED = "RESTORED"
    SOFT_DELETED = "SOFT_DELETED"
    DELETED = "DELETED"


@dataclass
class CatalogEntry:
    """A persisted photo as seen by the pipeline and moderation layers."""

    id: str
    status: PhotoStatus
    original_key: str
    variant_urls: dict[str, str] = field(default_factory=dict)
    width: int | None = None
    height: int | None = None
    size_bytes: int = 0
    created_at: float = 0.0
    updated_at: float = 0.0
    perceptual_hash: str | None = None
    duplicate_of: str | None = None
    rejection_reason: str | None = None
    deleted_at: float | None = None
    owner_id: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class AuditEntry:
    entry_id: str
    action: AuditAction
    actor: str
    reason: str | None = None
    at: float = 0.0


@dataclass(frozen=True)
class AccountRecord:
    id: str
    role: str
    email: str | None = None
    created_at: float = 0.0
    deleted_at: float | None = None


@dataclass(frozen=True)
class CatalogInsert:
    """Result of a catalog insert; ``created`` is False when the id already existed."""

    entry: CatalogEntry
    created: bool


class CatalogPort(Protocol):
    """Operations the ingest pipeline needs from the catalog."""

    def insert(self, entry: CatalogEntry) -> CatalogInsert: ...

    def get_by_id(self, entry_id: str) -> CatalogEntry | None: ...

    def get_by_original_key(self, original_key: str) -> CatalogEntry | None: ...

    def count_approved_for_quota(self, owner_id: str) -> int: ...

    def bytes_ingested_since(self, owner_id: str, since: float) -> int: ...

    def list_recent(self, limit: int) -> list[CatalogEntry]: ...

    def append_audit(self, entry: AuditEntry) -> None: ...


def _row_to_entry(row: Photo) -> CatalogEntry:
    try:
        urls = json.loads(row.variant_urls or "{}")
    except json.JSONDecodeError:
        LOGGER.error("catalog_variant_urls_decode_error", extra={"entry_id": row.id})
        urls = {}

    return CatalogEntry(
        id=row.id,
        status=PhotoStatus(row.status),
        original_key=row.original_key,
        variant_urls=dict(urls) if isinstance(urls, dict) else {},
        width=row.width,
        height=row.height,
        size_bytes=int(row.size_bytes or 0),
        created_at=float(row.created_at),
        updated_at=float(row.updated_at),
        perceptual_hash=row.perceptual_hash,
        duplicate_of=row.duplicate_of,
        rejection_reason=row.rejection_reason,
        deleted_at=row.deleted_at,
        owner_id=row.owner_id,
    )


def _row_to_account(row: Account) -> AccountRecord:
    return AccountRecord(
        id=row.id,
        role=row.role,
        email=row.email,
        created_at=float(row.created_at),
        deleted_at=row.deleted_at,
    )


class SqlCatalog:
    """Persist catalog entries, accounts and audit rows via SQLAlchemy.

    Every method opens its own short-lived session so the repository can be
    shared across worker threads. Database failures surface as
    :class:`PersistenceError`; a missing owner account surfaces as
    :class:`AccountRequired`.
    """

    def __init__(self, target: str | Path, clock: Callable[[], float] | None = None) -> None:
        self._target = target
        self._clock = clock or time.time

    # --- pipeline operations ---------------------------------------------------

    def insert(self, entry: CatalogEntry) -> CatalogInsert:
        """Insert ``entry`` once; a primary-key conflict returns the stored row."""

        try:
            with open_catalog_session(self._target) as session:
                if entry.owner_id is not None:
                    account = session.get(Account, entry.owner_id)
                    if account is None or account.deleted_at is not None:
                        raise AccountRequired(entry.owner_id)

                stmt = (
                    dialect_insert(session, Photo)
                    .values(
                        id=entry.id,
                        status=entry.status.value,
                        original_key=entry.original_key,
                        variant_urls=json.dumps(entry.variant_urls, sort_keys=True),
                        width=entry.width,
                        height=entry.height,
                        size_bytes=entry.size_bytes,
                        perceptual_hash=entry.perceptual_hash,
                        duplicate_of=entry.duplicate_of,
                        rejection_reason=entry.rejection_reason,
                        owner_id=entry.owner_id,
                        created_at=entry.created_at,
                        updated_at=entry.updated_at,
                        deleted_at=entry.deleted_at,
                    )
                    .on_conflict_do_nothing(index_elements=[Photo.id])
                )
                result = session.execute(stmt)
                session.commit()
                created = result.rowcount == 1

                row = session.get(Photo, entry.id)
                if row is None:
                    raise PersistenceError(f"catalog row {entry.id} vanished after insert")
                stored = _row_to_entry(row)
        except IntegrityError as exc:
            if entry.owner_id is not None and is_foreign_key_violation(exc):
                raise AccountRequired(entry.owner_id) from exc
            LOGGER.error("catalog_insert_integrity_error", extra={"entry_id": entry.id, "error": str(exc)})
            raise PersistenceError(f"catalog insert failed for {entry.id}") from exc
        except SQLAlchemyError as exc:
            LOGGER.error("catalog_insert_error", extra={"entry_id": entry.id, "error": str(exc)})
            raise PersistenceError(f"catalog insert failed for {entry.id}") from exc

        if not created:
            LOGGER.info("catalog_insert_conflict", extra={"entry_id": entry.id})
        return CatalogInsert(entry=stored, created=created)

    def get_by_id(self, entry_id: str) -> CatalogEntry | None:
        with self._reading("get_by_id") as session:
            row = session.get(Photo, entry_id)
            return _row_to_entry(row) if row is not None else None

    def get_by_original_key(self, original_key: str) -> CatalogEntry | None:
        stmt = (
            select(Photo)
            .where(Photo.original_key == original_key)
            .order_by(Photo.created_at.asc(), Photo.id.asc())
            .limit(1)
        )
        with self._reading("get_by_original_key") as session:
            row = session.execute(stmt).scalar_one_or_none()
            return _row_to_entry(row) if row is not None else None

    def count_approved_for_quota(self, owner_id: str) -> int:
        stmt = select(func.count(Photo.id)).where(
            Photo.owner_id == owner_id,
            Photo.status == PhotoStatus.APPROVED.value,
            Photo.deleted_at.is_(None),
        )
        with self._reading("count_approved_for_quota") as session:
            return int(session.execute(stmt).scalar_one() or 0)

    def bytes_ingested_since(self, owner_id: str, since: float) -> int:
        stmt = select(func.coalesce(func.sum(Photo.size_bytes), 0)).where(
            Photo.owner_id == owner_id,
            Photo.created_at >= since,
        )
        with self._reading("bytes_ingested_since") as session:
            return int(session.execute(stmt).scalar_one() or 0)

    def list_recent(self, limit: int) -> list[CatalogEntry]:
        """Return up to ``limit`` live entries, newest first."""

        stmt = (
            select(Photo)
            .where(Photo.deleted_at.is_(None))
            .order_by(Photo.created_at.desc(), Photo.id.desc())
            .limit(max(0, int(limit)))
        )
        with self._reading("list_recent") as session:
            return [_row_to_entry(row) for row in session.execute(stmt).scalars()]

    def append_audit(self, entry: AuditEntry) -> None:
        try:
            with open_catalog_session(self._target) as session:
                session.add(
                    AuditLog(
                        entry_id=entry.entry_id,
                        action=entry.action.value,
                        actor=entry.actor,
                        reason=entry.reason,
                        at=entry.at or self._clock(),
                    )
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"audit append failed for {entry.entry_id}") from exc

    # --- read and moderation operations ---------------------------------------

    def list_public(self, limit: int = 50, offset: int = 0) -> list[CatalogEntry]:
        """Approved entries that have not been soft-deleted, newest first."""

        stmt = (
            select(Photo)
            .where(Photo.status == PhotoStatus.APPROVED.value, Photo.deleted_at.is_(None))
            .order_by(Photo.created_at.desc(), Photo.id.desc())
            .limit(max(0, int(limit)))
            .offset(max(0, int(offset)))
        )
        with self._reading("list_public") as session:
            return [_row_to_entry(row) for row in session.execute(stmt).scalars()]

    def list_by_status(
        self,
        status: PhotoStatus,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> list[CatalogEntry]:
        stmt = select(Photo).where(Photo.status == status.value)
        if not include_deleted:
            stmt = stmt.where(Photo.deleted_at.is_(None))
        stmt = stmt.order_by(Photo.created_at.desc(), Photo.id.desc()).limit(max(0, int(limit))).offset(max(0, int(offset)))
        with self._reading("list_by_status") as session:
            return [_row_to_entry(row) for row in session.execute(stmt).scalars()]

    def set_status(self, entry_id: str, status: PhotoStatus, reason: str | None = None) -> CatalogEntry | None:
        def _apply(row: Photo, now: float) -> None:
            row.status = status.value
            row.rejection_reason = reason if status is PhotoStatus.REJECTED else None

        return self._update(entry_id, "set_status", _apply)

    def soft_delete(self, entry_id: str) -> CatalogEntry | None:
        def _apply(row: Photo, now: float) -> None:
            if row.deleted_at is None:
                row.deleted_at = now

        return self._update(entry_id, "soft_delete", _apply)

    def restore(self, entry_id: str) -> CatalogEntry | None:
        def _apply(row: Photo, now: float) -> None:
            row.deleted_at = None

        return self._update(entry_id, "restore", _apply)

    def delete(self, entry_id: str) -> bool:
        """Remove the row permanently; audit rows for the id are kept."""

        try:
            with open_catalog_session(self._target) as session:
                result = session.execute(delete(Photo).where(Photo.id == entry_id))
                session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise PersistenceError(f"catalog delete failed for {entry_id}") from exc

    def list_audit(self, entry_id: str) -> list[AuditEntry]:
        stmt = select(AuditLog).where(AuditLog.entry_id == entry_id).order_by(AuditLog.at.asc(), AuditLog.id.asc())
        with self._reading("list_audit") as session:
            return [
                AuditEntry(
                    entry_id=row.entry_id,
                    action=AuditAction(row.action),
                    actor=row.actor,
                    reason=row.reason,
                    at=float(row.at),
                )
                for row in session.execute(stmt).scalars()
            ]

    # --- accounts --------------------------------------------------------------

    def provision_account(self, actor_id: str, role: str, email: str | None = None) -> AccountRecord:
        """Create or refresh the owner account for ``actor_id``."""

        now = self._clock()
        try:
            with open_catalog_session(self._target) as session:
                stmt = dialect_insert(session, Account).values(
                    id=actor_id,
                    email=email,
                    role=role,
                    created_at=now,
                    deleted_at=None,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Account.id],
                    set_={"email": stmt.excluded.email, "role": stmt.excluded.role, "deleted_at": None},
                )
                session.execute(stmt)
                session.commit()
                row = session.get(Account, actor_id)
                if row is None:
                    raise PersistenceError(f"account {actor_id} vanished after provisioning")
                account = _row_to_account(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"account provisioning failed for {actor_id}") from exc

        LOGGER.info("account_provisioned", extra={"actor_id": actor_id, "role": role})
        return account

    def get_account(self, actor_id: str) -> AccountRecord | None:
        with self._reading("get_account") as session:
            row = session.get(Account, actor_id)
            return _row_to_account(row) if row is not None else None

    # --- internals -------------------------------------------------------------

    @contextmanager
    def _reading(self, operation: str) -> Iterator[Session]:
        try:
            with open_catalog_session(self._target) as session:
                yield session
        except SQLAlchemyError as exc:
            LOGGER.error("catalog_read_error", extra={"operation": operation, "error": str(exc)})
            raise PersistenceError(f"catalog {operation} failed") from exc

    def _update(
        self,
        entry_id: str,
        operation: str,
        apply: Callable[[Photo, float], None],
    ) -> CatalogEntry | None:
        now = self._clock()
        try:
            with open_catalog_session(self._target) as session:
                row = session.get(Photo, entry_id)
                if row is None:
                    return None
                apply(row, now)
                row.updated_at = now
                session.commit()
                return _row_to_entry(row)
        except SQLAlchemyError as exc:
            LOGGER.error("catalog_update_error", extra={"entry_id": entry_id, "operation": operation, "error": str(exc)})
            raise PersistenceError(f"catalog {operation} failed for {entry_id}") from exc


__all__ = [
    "AccountRecord",
    "AuditAction",
    "AuditEntry",
    "CatalogEntry",
    "CatalogInsert",
    "CatalogPort",
    "PhotoStatus",
    "SqlCatalog",
]
