"""Admin moderation actions over catalog entries."""

from __future__ import annotations

from gallery_ingest.catalog import AuditAction, AuditEntry, CatalogEntry, PhotoStatus, SqlCatalog
from gallery_ingest.errors import AuthRequired, ForbiddenRole, NotFound, StorageError
from gallery_ingest.roles import Actor, Role, is_at_least
from gallery_ingest.storage.base import StoragePort
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "moderation"})


class ModerationService:
    """Approve, reject, hide, restore and delete entries on behalf of an admin."""

    def __init__(self, catalog: SqlCatalog, storage: StoragePort) -> None:
        self._catalog = catalog
        self._storage = storage

    def list_public(self, limit: int = 50, offset: int = 0) -> list[CatalogEntry]:
        return self._catalog.list_public(limit=limit, offset=offset)

    def list_queue(self, actor: Actor | None, status: PhotoStatus = PhotoStatus.PENDING, limit: int = 50) -> list[CatalogEntry]:
        self._require_admin(actor)
        return self._catalog.list_by_status(status, limit=limit)

    def set_status(
        self,
        entry_id: str,
        status: PhotoStatus,
        actor: Actor | None,
        reason: str | None = None,
    ) -> CatalogEntry:
        admin = self._require_admin(actor)
        updated = self._catalog.set_status(entry_id, status, reason)
        if updated is None:
            raise NotFound(f"photo {entry_id} not found")
        LOGGER.info("photo_status_set", extra={"entry_id": entry_id, "status": status.value, "actor_id": admin.id})
        return updated

    def soft_delete(self, entry_id: str, actor: Actor | None, reason: str | None = None) -> CatalogEntry:
        admin = self._require_admin(actor)
        updated = self._catalog.soft_delete(entry_id)
        if updated is None:
            raise NotFound(f"photo {entry_id} not found")
        self._audit(entry_id, AuditAction.SOFT_DELETED, admin, reason)
        return updated

    def restore(self, entry_id: str, actor: Actor | None, reason: str | None = None) -> CatalogEntry:
        admin = self._require_admin(actor)
        updated = self._catalog.restore(entry_id)
        if updated is None:
            raise NotFound(f"photo {entry_id} not found")
        self._audit(entry_id, AuditAction.RESTORED, admin, reason)
        return updated

    def hard_delete(self, entry_id: str, actor: Actor | None, reason: str | None = None) -> None:
        """Remove stored objects (best effort) and then the catalog row."""

        admin = self._require_admin(actor)
        existing = self._catalog.get_by_id(entry_id)
        if existing is None:
            raise NotFound(f"photo {entry_id} not found")

        try:
            self._storage.delete_all(entry_id, existing.original_key)
        except StorageError as exc:
            LOGGER.warning("storage_cleanup_failed", extra={"entry_id": entry_id, "error": str(exc)})

        self._catalog.delete(entry_id)
        self._audit(entry_id, AuditAction.DELETED, admin, reason)

    @staticmethod
    def _require_admin(actor: Actor | None) -> Actor:
        if actor is None:
            raise AuthRequired("a session is required for moderation")
        if not is_at_least(actor.role, Role.ADMIN):
            raise ForbiddenRole(actor.role.value)
        return actor

    def _audit(self, entry_id: str, action: AuditAction, actor: Actor, reason: str | None) -> None:
        try:
            self._catalog.append_audit(AuditEntry(entry_id=entry_id, action=action, actor=actor.id, reason=reason))
        except Exception as exc:
            LOGGER.warning("audit_append_failed", extra={"entry_id": entry_id, "action": action.value, "error": str(exc)})
        else:
            LOGGER.info("photo_moderated", extra={"entry_id": entry_id, "action": action.value, "actor_id": actor.id})


__all__ = ["ModerationService"]
