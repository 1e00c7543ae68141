"""CLI entrypoint for moderation actions (approve, reject, hide, restore, delete)."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from gallery_ingest.catalog import PhotoStatus
from gallery_ingest.config import load_settings
from gallery_ingest.errors import GalleryIngestError
from gallery_ingest.ingest import entry_payload
from gallery_ingest.roles import Actor, Role
from gallery_ingest.services import build_services
from utils.logging import get_logger

LOGGER = get_logger(__name__)

_ACTIONS = {"approve", "reject", "private", "soft-delete", "restore", "delete", "audit"}


def main(
    action: str = typer.Argument(..., help="One of: approve, reject, private, soft-delete, restore, delete, audit."),
    entry_id: str = typer.Argument(..., help="Photo id to act on."),
    actor_id: str = typer.Option("cli-admin", "--actor-id", help="Admin id recorded in the audit log."),
    reason: str | None = typer.Option(None, "--reason", help="Optional reason (stored for rejections and audits)."),
    settings_path: Path | None = typer.Option(None, "--settings", help="Settings YAML; defaults to config/settings.yaml."),
    db: str | None = typer.Option(None, "--db", help="Catalog database URL or path. Defaults to database.url in settings.yaml."),
) -> None:
    """Apply ACTION to ENTRY_ID as an admin."""

    normalized = action.strip().lower()
    if normalized not in _ACTIONS:
        raise typer.BadParameter(f"unknown action {action!r}", param_hint="ACTION")

    settings = load_settings(settings_path)
    if db:
        settings.database.url = db
    services = build_services(settings)
    moderation = services.moderation
    admin = Actor(id=actor_id, role=Role.ADMIN)

    try:
        if normalized == "approve":
            result: object = entry_payload(moderation.set_status(entry_id, PhotoStatus.APPROVED, admin))
        elif normalized == "reject":
            result = entry_payload(moderation.set_status(entry_id, PhotoStatus.REJECTED, admin, reason=reason))
        elif normalized == "private":
            result = entry_payload(moderation.set_status(entry_id, PhotoStatus.PRIVATE, admin))
        elif normalized == "soft-delete":
            result = entry_payload(moderation.soft_delete(entry_id, admin, reason=reason))
        elif normalized == "restore":
            result = entry_payload(moderation.restore(entry_id, admin, reason=reason))
        elif normalized == "delete":
            moderation.hard_delete(entry_id, admin, reason=reason)
            result = {"ok": True}
        else:
            result = [
                {"action": item.action.value, "actor": item.actor, "reason": item.reason, "at": item.at}
                for item in services.catalog.list_audit(entry_id)
            ]
    except GalleryIngestError as exc:
        LOGGER.error("cli_moderation_failed", extra={"action": normalized, "entry_id": entry_id, "code": exc.code})
        typer.echo(json.dumps(exc.to_payload(), indent=2))
        raise typer.Exit(code=1) from exc

    LOGGER.info("cli_moderation_complete", extra={"action": normalized, "entry_id": entry_id})
    typer.echo(json.dumps(result, indent=2, sort_keys=True))


if __name__ == "__main__":
    typer.run(main)


__all__ = ["main"]
