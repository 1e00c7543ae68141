"""Shared logging configuration and logger factory."""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict


_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_LOG_ROOT = _PROJECT_ROOT / "log"
_LOG_FILE_NAME = "gallery_ingest.log"


def _standard_record_keys() -> set[str]:
    return set(logging.makeLogRecord({}).__dict__.keys()) | {"stack_info", "asctime", "message"}


class _StructuredFormatter(logging.Formatter):
    """Formatter that renders records as single-line JSON objects (JSONL-friendly)."""

    def format(self, record: logging.LogRecord) -> str:
        standard_keys = _standard_record_keys()
        extras: Dict[str, Any] = {key: value for key, value in record.__dict__.items() if key not in standard_keys}

        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if extras:
            payload.update(extras)

        try:
            return json.dumps(payload, ensure_ascii=False, sort_keys=True)
        except TypeError:
            safe_payload: Dict[str, Any] = {
                key: (str(value) if not isinstance(value, (str, int, float, bool, type(None))) else value)
                for key, value in payload.items()
            }
            return json.dumps(safe_payload, ensure_ascii=False, sort_keys=True)


class _ConsoleFormatter(logging.Formatter):
    """Console formatter that appends ``extra`` fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        ignore_keys = _standard_record_keys()
        extras: Dict[str, Any] = {key: value for key, value in record.__dict__.items() if key not in ignore_keys}

        if not extras:
            return base

        parts = [f"{key}={value!r}" for key, value in sorted(extras.items())]
        return f"{base} | " + " ".join(parts)


def _resolve_level() -> int:
    raw = os.getenv("GALLERY_INGEST_LOG_LEVEL", "").strip().upper()
    if not raw:
        return logging.INFO
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def _resolve_log_root() -> Path:
    override = os.getenv("GALLERY_INGEST_LOG_DIR", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return _DEFAULT_LOG_ROOT


def _configure_root_logger() -> None:
    """Attach console and rotating JSONL handlers to the root logger once."""

    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(_resolve_level())

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(_ConsoleFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(console_handler)

    log_root = _resolve_log_root()
    try:
        log_root.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_root / _LOG_FILE_NAME,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as exc:
        # Console logging keeps working on read-only deployments.
        root.warning("log_file_unavailable", extra={"log_root": str(log_root), "error": str(exc)})
        return

    file_handler.setFormatter(_StructuredFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(file_handler)


def get_logger(name: str, extra: Dict[str, Any] | None = None) -> logging.LoggerAdapter:
    """Return a structured logger adapter for the given name.

    The first call configures the root handlers. Callers can pass a base
    ``extra`` mapping that is attached to every record emitted through the
    returned adapter; per-call ``extra`` values are merged on top of it.
    """

    _configure_root_logger()
    logger = logging.getLogger(name)
    return _MergingAdapter(logger, extra or {})


class _MergingAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges per-call ``extra`` with the adapter's base fields."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        call_extra = kwargs.get("extra") or {}
        kwargs["extra"] = {**(self.extra or {}), **call_extra}
        return msg, kwargs


__all__ = ["get_logger"]
