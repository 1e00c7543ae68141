"""CLI entrypoint that stages a local image and runs it through the ingest pipeline.

Intended for local runs against the configured database and storage backend;
the acting identity is given on the command line instead of a session.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer

from gallery_ingest.config import load_settings
from gallery_ingest.errors import GalleryIngestError
from gallery_ingest.ingest import IngestRequest
from gallery_ingest.roles import parse_role
from gallery_ingest.services import build_services
from gallery_ingest.session import StaticSession
from utils.logging import get_logger

LOGGER = get_logger(__name__)


def main(
    image_path: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        help="Image file to upload and ingest.",
    ),
    actor_id: str = typer.Option(..., "--actor-id", help="Account id of the uploader."),
    role: str = typer.Option("member", "--role", help="Session role: viewer, member or admin."),
    email: str | None = typer.Option(None, "--email", help="Optional email stored when provisioning."),
    idempotency_key: str | None = typer.Option(
        None,
        "--idempotency-key",
        help="Explicit client token; defaults to the storage key of the staged original.",
    ),
    provision: bool = typer.Option(
        True,
        "--provision/--no-provision",
        help="Create the owner account before ingesting when it does not exist yet.",
    ),
    settings_path: Path | None = typer.Option(None, "--settings", help="Settings YAML; defaults to config/settings.yaml."),
    db: str | None = typer.Option(None, "--db", help="Catalog database URL or path. Defaults to database.url in settings.yaml."),
) -> None:
    """Stage IMAGE_PATH and ingest it as ACTOR_ID."""

    settings = load_settings(settings_path)
    if db:
        settings.database.url = db
    services = build_services(settings)
    session = StaticSession.for_user(actor_id, parse_role(role), email)

    if provision and services.catalog.get_account(actor_id) is None:
        services.catalog.provision_account(actor_id, parse_role(role).value, email)

    try:
        staged = services.uploads.stage(image_path.read_bytes(), image_path.name)
    except GalleryIngestError as exc:
        LOGGER.error("cli_stage_failed", extra={"path": str(image_path), "code": exc.code, "error": str(exc)})
        typer.echo(json.dumps(exc.to_payload(), indent=2))
        raise typer.Exit(code=1) from exc

    request = IngestRequest(
        storage_key=staged.storage_key,
        perceptual_hash=staged.perceptual_hash,
        idempotency_key=idempotency_key,
    )
    response = asyncio.run(services.orchestrator.ingest(request, session))
    LOGGER.info(
        "cli_ingest_complete",
        extra={"path": str(image_path), "storage_key": staged.storage_key, "http_status": response.http_status},
    )
    typer.echo(json.dumps(response.payload, indent=2, sort_keys=True))
    if not response.ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    typer.run(main)


__all__ = ["main"]
