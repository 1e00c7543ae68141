"""Typed error hierarchy shared by the ingest pipeline and its collaborators.

Every error carries a stable machine-readable ``code``, an HTTP-equivalent
``status`` and a coarse ``category`` so that the orchestrator (and the thin
API/CLI shells) can render a precise, stable response without inspecting
messages.
"""

from __future__ import annotations

from typing import Any


class GalleryIngestError(Exception):
    """Base error for the gallery ingest service."""

    code: str = "internal_error"
    status: int = 500
    category: str = "server"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        super().__init__(message or self.code)
        if code is not None:
            self.code = code

    def details(self) -> dict[str, Any]:
        return {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "message": str(self)}
        payload.update(self.details())
        return payload


# --- admission -------------------------------------------------------------------


class AdmissionError(GalleryIngestError):
    """Rejected before any resource is touched."""

    category = "admission"


class InvalidRequest(AdmissionError):
    code = "invalid_request"
    status = 400
    category = "client"


class AuthRequired(AdmissionError):
    code = "auth_required"
    status = 401


class RateLimited(AdmissionError):
    code = "rate_limited"
    status = 429

    def __init__(self, key: str) -> None:
        super().__init__(f"rate limit exceeded for {key}")
        self.key = key


class ForbiddenRole(AdmissionError):
    code = "forbidden_role"
    status = 403

    def __init__(self, role: str) -> None:
        super().__init__(f"role {role!r} may not perform this action")
        self.role = role

    def details(self) -> dict[str, Any]:
        return {"role": self.role}


# --- quota -----------------------------------------------------------------------


class QuotaExceeded(GalleryIngestError):
    """A role quota dimension is exhausted (``photos_limit`` or ``bytes_limit``)."""

    code = "photos_limit"
    status = 403
    category = "quota"

    def __init__(self, code: str, *, used: int, limit: int) -> None:
        super().__init__(f"{code}: {used} of {limit} used", code=code)
        self.used = used
        self.limit = limit

    def details(self) -> dict[str, Any]:
        return {"used": self.used, "limit": self.limit}


# --- pipeline --------------------------------------------------------------------


class PipelineError(GalleryIngestError):
    """Storage or image processing failure; aborts before any catalog write."""

    code = "pipeline_failed"
    status = 502


class StorageError(PipelineError):
    code = "storage_error"


class StorageReadError(StorageError):
    code = "storage_read_failed"


class ImageDecodeError(PipelineError):
    code = "decode_failed"
    status = 422
    category = "client"


class VariantPublishError(PipelineError):
    code = "publish_failed"

    def __init__(self, entry_id: str, failed_labels: list[str]) -> None:
        super().__init__(f"variant publish failed for {entry_id}: {', '.join(failed_labels)}")
        self.entry_id = entry_id
        self.failed_labels = failed_labels

    def details(self) -> dict[str, Any]:
        return {"failedSizes": list(self.failed_labels)}


class InvalidUpload(GalleryIngestError):
    code = "invalid_upload"
    status = 400
    category = "client"


# --- persistence -----------------------------------------------------------------


class PersistenceError(GalleryIngestError):
    code = "persistence_failed"
    status = 500


class AccountRequired(PersistenceError):
    """The owning account has not been provisioned yet."""

    code = "account_required"
    status = 409
    category = "conflict"

    def __init__(self, actor_id: str) -> None:
        super().__init__(f"account {actor_id!r} must be provisioned before uploading")
        self.actor_id = actor_id

    def details(self) -> dict[str, Any]:
        return {"actorId": self.actor_id}


class IdempotencyUnavailable(PersistenceError):
    code = "idempotency_unavailable"


class NotFound(GalleryIngestError):
    code = "not_found"
    status = 404
    category = "client"


__all__ = [
    "AccountRequired",
    "AdmissionError",
    "AuthRequired",
    "ForbiddenRole",
    "GalleryIngestError",
    "IdempotencyUnavailable",
    "ImageDecodeError",
    "InvalidRequest",
    "InvalidUpload",
    "NotFound",
    "PersistenceError",
    "PipelineError",
    "QuotaExceeded",
    "RateLimited",
    "StorageError",
    "StorageReadError",
    "VariantPublishError",
]
