"""Initialize the catalog schema, the local storage root and optionally an account."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure src/ is on sys.path so we can import shared logging and DB helpers.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.append(str(SRC_ROOT))

from gallery_ingest.catalog import SqlCatalog  # noqa: E402
from gallery_ingest.config import load_settings  # noqa: E402
from gallery_ingest.db import open_catalog_session  # noqa: E402
from gallery_ingest.roles import Role, parse_role  # noqa: E402
from gallery_ingest.storage.local import ORIGINALS_DIR, VARIANTS_DIR  # noqa: E402
from utils.logging import get_logger  # noqa: E402

LOGGER = get_logger(__name__)


def _init_catalog_db(target: str | Path) -> None:
    session = open_catalog_session(target)
    session.close()
    LOGGER.info("init_catalog_db_ok", extra={"target": str(target)})


def _init_storage_root(root: Path) -> None:
    """Create the originals and variants directories for the local driver."""

    for name in (ORIGINALS_DIR, VARIANTS_DIR):
        (root / name).mkdir(parents=True, exist_ok=True)
    LOGGER.info("init_storage_root_ok", extra={"root": str(root)})


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the catalog schema and local storage root.")
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Catalog database URL or path. Defaults to database.url in settings.yaml.",
    )
    parser.add_argument(
        "--storage-root",
        dest="storage_root",
        type=str,
        default=None,
        help="Local storage root. Defaults to storage.local_root in settings.yaml.",
    )
    parser.add_argument(
        "--account",
        dest="account",
        type=str,
        default=None,
        help="Provision an owner account with this id.",
    )
    parser.add_argument(
        "--role",
        dest="role",
        type=str,
        default=Role.MEMBER.value,
        help="Role for --account (member or admin).",
    )
    parser.add_argument("--email", dest="email", type=str, default=None, help="Email for --account.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = load_settings()
    catalog_target = args.db or settings.database.url
    _init_catalog_db(catalog_target)

    storage_root: Path | None = None
    if args.storage_root or settings.storage.driver == "local":
        storage_root = Path(args.storage_root or settings.storage.local_root).expanduser().resolve()
        _init_storage_root(storage_root)

    if args.account:
        role = parse_role(args.role)
        SqlCatalog(catalog_target).provision_account(args.account, role.value, args.email)

    LOGGER.info(
        "init_databases_complete",
        extra={"catalog": str(catalog_target), "storage_root": str(storage_root) if storage_root else None},
    )


if __name__ == "__main__":
    main()
