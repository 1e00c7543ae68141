"""Configuration loader and typed settings for the gallery ingest service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

_GIB = 1024 * 1024 * 1024
_MIB = 1024 * 1024


@dataclass
class DatabaseConfig:
    """Catalog database target (SQLite path/URL or PostgreSQL URL)."""

    url: str = "sqlite:///data/gallery.db"


@dataclass
class StorageConfig:
    """Storage backend selection and per-backend settings.

    ``driver`` selects exactly one backend at startup: ``local`` writes under
    ``local_root``; ``s3`` talks to any S3-compatible object store (R2, MinIO,
    AWS). Credentials are read from the environment only.
    """

    driver: str = "local"
    local_root: str = "data/storage"
    cdn_base_url: str = "/mock-cdn"
    s3_endpoint_url: str | None = None
    s3_region: str = "auto"
    s3_originals_bucket: str = ""
    s3_variants_bucket: str = ""
    s3_cdn_base_url: str = ""
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None


@dataclass
class VariantConfig:
    """Derivative size classes (bounding-box max side in pixels) and encoding."""

    sizes: dict[str, int] = field(default_factory=lambda: {"sm": 256, "md": 768, "lg": 1536})
    quality: int = 75


@dataclass
class DedupConfig:
    """Recent-window near-duplicate heuristic."""

    enabled: bool = True
    window: int = 100
    max_distance: int = 5


@dataclass
class IdempotencyConfig:
    """Pipeline lease held by the request that owns an idempotency key."""

    lease_seconds: float = 120.0


@dataclass
class RateLimitConfig:
    """Fallback token bucket for roles without a per-minute ingest ceiling."""

    capacity: int = 10
    refill_per_ms: int = 60_000


@dataclass
class RoleQuota:
    """Per-role ceilings; ``max_ingests_per_minute`` feeds the rate limiter."""

    max_photos: int
    max_bytes_per_day: int
    max_ingests_per_minute: int


@dataclass
class QuotaConfig:
    member: RoleQuota = field(
        default_factory=lambda: RoleQuota(max_photos=200, max_bytes_per_day=_GIB, max_ingests_per_minute=10)
    )
    admin: RoleQuota = field(
        default_factory=lambda: RoleQuota(max_photos=10_000, max_bytes_per_day=20 * _GIB, max_ingests_per_minute=60)
    )


@dataclass
class UploadConfig:
    """Upload staging checks."""

    max_bytes: int = 10 * _MIB
    allowed_formats: list[str] = field(default_factory=lambda: ["JPEG", "PNG", "WEBP"])
    trust_vendor_guarantees: bool = False


@dataclass
class Settings:
    """Top-level application settings."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    variants: VariantConfig = field(default_factory=VariantConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    idempotency: IdempotencyConfig = field(default_factory=IdempotencyConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    quotas: QuotaConfig = field(default_factory=QuotaConfig)
    uploads: UploadConfig = field(default_factory=UploadConfig)


def _project_root() -> Path:
    """Best-effort detection of the repository root for config discovery."""

    module_path = Path(__file__).resolve()
    try:
        return module_path.parents[2]
    except IndexError:  # pragma: no cover - installed flat
        return module_path.parent


def _default_settings_paths() -> list[Path]:
    cwd_candidate = (Path.cwd() / "config" / "settings.yaml").resolve()
    repo_candidate = (_project_root() / "config" / "settings.yaml").resolve()
    if cwd_candidate == repo_candidate:
        return [cwd_candidate]
    return [cwd_candidate, repo_candidate]


def _resolve_settings_path(settings_path: Path | str | None) -> Path:
    """Determine which settings file to load, honoring overrides."""

    if settings_path:
        return Path(settings_path).expanduser().resolve()

    env_override = os.getenv("GALLERY_INGEST_SETTINGS")
    if env_override:
        return Path(env_override).expanduser().resolve()

    candidates = _default_settings_paths()
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_role_quota(raw: dict[str, Any], target: RoleQuota) -> None:
    if _is_int(raw.get("max_photos")):
        target.max_photos = raw["max_photos"]
    if _is_int(raw.get("max_bytes_per_day")):
        target.max_bytes_per_day = raw["max_bytes_per_day"]
    if _is_int(raw.get("max_ingests_per_minute")):
        target.max_ingests_per_minute = raw["max_ingests_per_minute"]


def _apply_env_overrides(settings: Settings) -> None:
    database_url = os.getenv("GALLERY_INGEST_DATABASE_URL")
    if database_url:
        settings.database.url = database_url

    driver = os.getenv("GALLERY_INGEST_STORAGE_DRIVER")
    if driver:
        settings.storage.driver = driver.strip().lower()

    access_key = os.getenv("S3_ACCESS_KEY_ID")
    secret_key = os.getenv("S3_SECRET_ACCESS_KEY")
    if access_key and secret_key:
        settings.storage.s3_access_key_id = access_key
        settings.storage.s3_secret_access_key = secret_key


def load_settings(settings_path: Path | str | None = None) -> Settings:
    """Load settings from YAML, falling back to defaults.

    A missing file or a file whose top level is not a mapping yields a
    :class:`Settings` instance populated with default values. Environment
    overrides are applied last in every case.
    """

    path = _resolve_settings_path(settings_path)
    settings = Settings()

    raw: Any = {}
    if path.exists() and path.is_file():
        with path.open("r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or {}

    if not isinstance(raw, dict):
        raw = {}

    database_raw = _as_dict(raw.get("database"))
    if isinstance(database_raw.get("url"), str):
        settings.database.url = database_raw["url"]

    storage_raw = _as_dict(raw.get("storage"))
    storage_cfg = settings.storage
    if isinstance(storage_raw.get("driver"), str):
        storage_cfg.driver = storage_raw["driver"].strip().lower()
    if isinstance(storage_raw.get("local_root"), str):
        storage_cfg.local_root = storage_raw["local_root"]
    if isinstance(storage_raw.get("cdn_base_url"), str):
        storage_cfg.cdn_base_url = storage_raw["cdn_base_url"].rstrip("/")
    if isinstance(storage_raw.get("s3_endpoint_url"), str):
        storage_cfg.s3_endpoint_url = storage_raw["s3_endpoint_url"]
    if isinstance(storage_raw.get("s3_region"), str):
        storage_cfg.s3_region = storage_raw["s3_region"]
    if isinstance(storage_raw.get("s3_originals_bucket"), str):
        storage_cfg.s3_originals_bucket = storage_raw["s3_originals_bucket"]
    if isinstance(storage_raw.get("s3_variants_bucket"), str):
        storage_cfg.s3_variants_bucket = storage_raw["s3_variants_bucket"]
    if isinstance(storage_raw.get("s3_cdn_base_url"), str):
        storage_cfg.s3_cdn_base_url = storage_raw["s3_cdn_base_url"].rstrip("/")

    variants_raw = _as_dict(raw.get("variants"))
    sizes_raw = _as_dict(variants_raw.get("sizes"))
    if sizes_raw:
        parsed_sizes = {str(label): int(side) for label, side in sizes_raw.items() if _is_int(side) and side > 0}
        if parsed_sizes:
            settings.variants.sizes = parsed_sizes
    if _is_int(variants_raw.get("quality")):
        settings.variants.quality = max(1, min(100, variants_raw["quality"]))

    dedup_raw = _as_dict(raw.get("dedup"))
    if isinstance(dedup_raw.get("enabled"), bool):
        settings.dedup.enabled = dedup_raw["enabled"]
    if _is_int(dedup_raw.get("window")):
        settings.dedup.window = dedup_raw["window"]
    if _is_int(dedup_raw.get("max_distance")):
        settings.dedup.max_distance = dedup_raw["max_distance"]

    idempotency_raw = _as_dict(raw.get("idempotency"))
    lease = idempotency_raw.get("lease_seconds")
    if (_is_int(lease) or isinstance(lease, float)) and lease > 0:
        settings.idempotency.lease_seconds = float(lease)

    rate_raw = _as_dict(raw.get("rate_limit"))
    if _is_int(rate_raw.get("capacity")):
        settings.rate_limit.capacity = rate_raw["capacity"]
    if _is_int(rate_raw.get("refill_per_ms")):
        settings.rate_limit.refill_per_ms = rate_raw["refill_per_ms"]

    quotas_raw = _as_dict(raw.get("quotas"))
    _parse_role_quota(_as_dict(quotas_raw.get("member")), settings.quotas.member)
    _parse_role_quota(_as_dict(quotas_raw.get("admin")), settings.quotas.admin)

    uploads_raw = _as_dict(raw.get("uploads"))
    if _is_int(uploads_raw.get("max_bytes")):
        settings.uploads.max_bytes = uploads_raw["max_bytes"]
    if isinstance(uploads_raw.get("allowed_formats"), list):
        settings.uploads.allowed_formats = [str(item).upper() for item in uploads_raw["allowed_formats"] if str(item)]
    if isinstance(uploads_raw.get("trust_vendor_guarantees"), bool):
        settings.uploads.trust_vendor_guarantees = uploads_raw["trust_vendor_guarantees"]

    _apply_env_overrides(settings)
    return settings


__all__ = [
    "DatabaseConfig",
    "DedupConfig",
    "IdempotencyConfig",
    "QuotaConfig",
    "RateLimitConfig",
    "RoleQuota",
    "Settings",
    "StorageConfig",
    "UploadConfig",
    "VariantConfig",
    "load_settings",
]
