"""Shared helpers for database URLs and dialect-aware operations."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session


def normalize_database_url(target: str | Path) -> str:
    """Normalize database URL or path inputs to absolute URLs."""

    if isinstance(target, Path):
        return f"sqlite:///{target.resolve()}"

    raw = str(target).strip()
    if not raw:
        raise ValueError("database target cannot be empty")

    if "://" not in raw:
        return f"sqlite:///{Path(raw).resolve()}"

    url = make_url(raw)
    if url.drivername.startswith("sqlite"):
        database = url.database or ""
        if database in {":memory:", ""}:
            return raw
        db_path = Path(database)
        if not db_path.is_absolute():
            db_path = (Path.cwd() / db_path).resolve()
        # Rebuilt by hand: rendering the URL object percent-encodes the path.
        _, _, query = raw.partition("?")
        normalized = f"{url.drivername}:///{db_path}"
        return f"{normalized}?{query}" if query else normalized

    return raw


def dialect_insert(session: Session, table: Any) -> Any:
    """Return a dialect-aware INSERT statement supporting ON CONFLICT."""

    bind = session.get_bind()
    if bind is None:
        raise RuntimeError("Session is not bound to an engine.")

    name = bind.dialect.name
    if name == "sqlite":
        return sqlite_insert(table)
    if name.startswith("postgresql"):
        return pg_insert(table)
    raise NotImplementedError(f"Unsupported dialect for upsert: {name}")


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    """Return True when an IntegrityError stems from a foreign-key constraint."""

    pgcode = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if pgcode == "23503":
        return True
    return "foreign key" in str(exc.orig).lower()


__all__ = ["dialect_insert", "is_foreign_key_violation", "normalize_database_url"]
