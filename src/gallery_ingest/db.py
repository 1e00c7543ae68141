"""SQLAlchemy schema definitions, engine cache, and session management."""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Any

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from gallery_ingest.db_helpers import normalize_database_url
from utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class Account(Base):
    """Provisioned owner accounts; photos reference them through ``owner_id``."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    deleted_at: Mapped[float | None] = mapped_column(Float, nullable=True)


class Photo(Base):
    """Catalog entry for an ingested photo and its published variants."""

    __tablename__ = "photos"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    original_key: Mapped[str] = mapped_column(String, nullable=False)
    variant_urls: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    perceptual_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    duplicate_of: Mapped[str | None] = mapped_column(String, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(String, ForeignKey("accounts.id"), nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False)
    deleted_at: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("idx_photos_status_created", "status", "created_at"),
        Index("idx_photos_created", "created_at"),
        Index("idx_photos_deleted", "deleted_at"),
        Index("idx_photos_original_key", "original_key"),
        Index("idx_photos_owner", "owner_id"),
    )


class IngestKey(Base):
    """Write-once mapping from request key to candidate photo id, plus the pipeline lease."""

    __tablename__ = "ingest_keys"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    candidate_id: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    lease_expires_at: Mapped[float | None] = mapped_column(Float, nullable=True)


class AuditLog(Base):
    """Append-only record of state-changing operations on catalog entries."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_id: Mapped[str] = mapped_column(String, nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    actor: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    at: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (Index("idx_audit_log_entry", "entry_id", "at"),)


_ENGINE_CACHE: dict[str, Engine] = {}
_ENGINE_LOCK = Lock()


def _ensure_parent_directory(path: Path) -> None:
    """Ensure the parent directory for a database file exists."""

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.error("db_parent_directory_error", extra={"path": str(path), "error": str(exc)})
        raise


def get_engine(target: str | Path) -> Engine:
    """Return a cached SQLAlchemy engine for the provided target, creating schema if needed."""

    normalized = normalize_database_url(target)
    engine = _ENGINE_CACHE.get(normalized)
    if engine is not None:
        return engine

    with _ENGINE_LOCK:
        engine = _ENGINE_CACHE.get(normalized)
        if engine is not None:
            return engine

        sa_url = make_url(normalized)
        is_sqlite = sa_url.drivername.startswith("sqlite")

        engine_kwargs: dict[str, object] = {}
        if is_sqlite:
            if sa_url.database and sa_url.database not in {":memory:"}:
                _ensure_parent_directory(Path(sa_url.database))
            engine_kwargs["connect_args"] = {"timeout": 30.0}
        else:
            engine_kwargs["pool_pre_ping"] = True

        engine = create_engine(normalized, **engine_kwargs)

        if is_sqlite:

            @event.listens_for(engine, "connect")
            def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
                """Configure SQLite for concurrent writers and enforced foreign keys."""

                cursor = dbapi_connection.cursor()
                try:
                    cursor.execute("PRAGMA journal_mode=WAL")
                    cursor.execute("PRAGMA busy_timeout = 30000")
                    cursor.execute("PRAGMA foreign_keys = ON")
                finally:
                    cursor.close()

        try:
            Base.metadata.create_all(engine)
        except OperationalError as exc:
            # Several workers starting at once may race between SQLite's
            # existence check and CREATE TABLE.
            if "already exists" in str(exc).lower():
                LOGGER.info("db_create_all_table_exists_race", extra={"target": normalized, "error": str(exc)})
            else:
                raise

        _ENGINE_CACHE[normalized] = engine
        return engine


def open_catalog_session(target: str | Path) -> Session:
    """Open a SQLAlchemy session for the catalog database."""

    return Session(get_engine(target))


def dispose_engines() -> None:
    """Dispose and forget every cached engine."""

    with _ENGINE_LOCK:
        for engine in _ENGINE_CACHE.values():
            engine.dispose()
        _ENGINE_CACHE.clear()


__all__ = [
    "Account",
    "AuditLog",
    "Base",
    "IngestKey",
    "Photo",
    "dispose_engines",
    "get_engine",
    "open_catalog_session",
]
