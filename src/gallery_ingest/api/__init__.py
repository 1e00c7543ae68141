"""Flask JSON API exposing upload staging, ingest and moderation."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any

from flask import Flask, abort, current_app, jsonify, request, send_file

from gallery_ingest.catalog import PhotoStatus
from gallery_ingest.errors import AuthRequired, ForbiddenRole, GalleryIngestError, InvalidRequest, NotFound
from gallery_ingest.ingest import IngestRequest, entry_payload
from gallery_ingest.roles import Actor, Role, is_at_least
from gallery_ingest.services import Services, build_services
from gallery_ingest.session import HeaderSession
from gallery_ingest.storage.local import LocalStorage
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "api"})

_EXTENSION_KEY = "gallery_ingest"
_DEFAULT_PAGE_SIZE = 50
_MAX_PAGE_SIZE = 200


def _services() -> Services:
    return current_app.extensions[_EXTENSION_KEY]


def _current_actor() -> Actor | None:
    return HeaderSession(request.headers).get_actor()


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _int_arg(name: str, default: int, maximum: int | None = None) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise InvalidRequest(f"{name} must be an integer") from exc
    value = max(0, value)
    return min(value, maximum) if maximum is not None else value


def _parse_status(raw: Any) -> PhotoStatus:
    try:
        return PhotoStatus(str(raw or "").strip().upper())
    except ValueError as exc:
        raise InvalidRequest(f"unknown status {raw!r}") from exc


def _handle_gallery_error(exc: GalleryIngestError) -> Any:
    LOGGER.warning("api_error", extra={"code": exc.code, "status": exc.status, "path": request.path})
    return jsonify(exc.to_payload()), exc.status


def upload() -> Any:
    """Stage an uploaded original and return its storage key and fingerprint."""

    actor = _current_actor()
    if actor is None:
        raise AuthRequired("a session is required to upload")
    if not is_at_least(actor.role, Role.MEMBER):
        raise ForbiddenRole(actor.role.value)

    file = request.files.get("file")
    if file is not None:
        data = file.read()
        filename = file.filename
    else:
        data = request.get_data()
        filename = request.headers.get("X-Filename")

    staged = _services().uploads.stage(data, filename)
    return (
        jsonify(
            {
                "key": staged.storage_key,
                "perceptualHash": staged.perceptual_hash,
                "sizeBytes": staged.size_bytes,
                "width": staged.width,
                "height": staged.height,
            }
        ),
        201,
    )


def _optional_str(body: dict[str, Any], name: str) -> str | None:
    value = body.get(name)
    if value is None or isinstance(value, str):
        return value
    raise InvalidRequest(f"{name} must be a string")


async def ingest() -> Any:
    body = _json_body()
    storage_key = _optional_str(body, "key") or _optional_str(body, "storageKey") or ""
    ingest_request = IngestRequest(
        storage_key=storage_key,
        perceptual_hash=_optional_str(body, "perceptualHash"),
        idempotency_key=_optional_str(body, "idempotencyKey") or request.headers.get("Idempotency-Key"),
    )
    response = await _services().orchestrator.ingest(ingest_request, HeaderSession(request.headers))
    return jsonify(response.payload), response.http_status


def list_photos() -> Any:
    limit = _int_arg("limit", _DEFAULT_PAGE_SIZE, _MAX_PAGE_SIZE)
    offset = _int_arg("offset", 0)
    entries = _services().moderation.list_public(limit=limit, offset=offset)
    return jsonify({"items": [entry_payload(entry) for entry in entries], "limit": limit, "offset": offset})


def get_photo(entry_id: str) -> Any:
    entry = _services().catalog.get_by_id(entry_id)
    actor = _current_actor()
    is_admin = actor is not None and actor.role is Role.ADMIN
    if entry is None or (not is_admin and (entry.is_deleted or entry.status is not PhotoStatus.APPROVED)):
        raise NotFound(f"photo {entry_id} not found")

    payload = entry_payload(entry)
    if is_admin:
        payload.update(
            {
                "originalKey": entry.original_key,
                "ownerId": entry.owner_id,
                "deletedAt": entry.deleted_at,
                "rejectionReason": entry.rejection_reason,
            }
        )
    return jsonify(payload)


def set_status(entry_id: str) -> Any:
    body = _json_body()
    updated = _services().moderation.set_status(
        entry_id,
        _parse_status(body.get("status")),
        _current_actor(),
        reason=body.get("reason"),
    )
    return jsonify(entry_payload(updated))


def soft_delete(entry_id: str) -> Any:
    _services().moderation.soft_delete(entry_id, _current_actor(), reason=_json_body().get("reason"))
    return jsonify({"ok": True})


def restore(entry_id: str) -> Any:
    _services().moderation.restore(entry_id, _current_actor(), reason=_json_body().get("reason"))
    return jsonify({"ok": True})


def delete_photo(entry_id: str) -> Any:
    _services().moderation.hard_delete(entry_id, _current_actor(), reason=_json_body().get("reason"))
    return jsonify({"ok": True})


def mock_cdn(entry_id: str, filename: str) -> Any:
    """Serve locally stored variants when the local storage driver is active."""

    storage = _services().storage
    if not isinstance(storage, LocalStorage):
        abort(404)

    name = PurePosixPath(filename)
    if name.suffix != ".webp":
        abort(404)
    try:
        path = storage.variant_path(entry_id, name.stem)
    except GalleryIngestError:
        abort(404)
    if not path.exists():
        abort(404)
    return send_file(path, mimetype="image/webp", max_age=31536000)


def create_app(services: Services | None = None) -> Flask:
    """Build the Flask application around one set of services."""

    app = Flask(__name__)
    app.extensions[_EXTENSION_KEY] = services or build_services()
    app.register_error_handler(GalleryIngestError, _handle_gallery_error)

    app.add_url_rule("/api/uploads", view_func=upload, methods=["POST"])
    app.add_url_rule("/api/photos/ingest", view_func=ingest, methods=["POST"])
    app.add_url_rule("/api/photos", view_func=list_photos, methods=["GET"])
    app.add_url_rule("/api/photos/<entry_id>", view_func=get_photo, methods=["GET"])
    app.add_url_rule("/api/photos/<entry_id>", endpoint="delete_photo", view_func=delete_photo, methods=["DELETE"])
    app.add_url_rule("/api/photos/<entry_id>/status", view_func=set_status, methods=["POST"])
    app.add_url_rule("/api/photos/<entry_id>/soft-delete", view_func=soft_delete, methods=["POST"])
    app.add_url_rule("/api/photos/<entry_id>/restore", view_func=restore, methods=["POST"])
    app.add_url_rule("/mock-cdn/<entry_id>/<filename>", view_func=mock_cdn, methods=["GET"])
    return app


__all__ = ["create_app"]
