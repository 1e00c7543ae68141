from __future__ import annotations

from pathlib import Path

import pytest

from gallery_ingest.config import Settings, load_settings


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch) -> None:
    for name in (
        "GALLERY_INGEST_SETTINGS",
        "GALLERY_INGEST_DATABASE_URL",
        "GALLERY_INGEST_STORAGE_DRIVER",
        "S3_ACCESS_KEY_ID",
        "S3_SECRET_ACCESS_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "absent.yaml")

    assert settings == Settings()
    assert settings.variants.sizes == {"sm": 256, "md": 768, "lg": 1536}
    assert settings.quotas.member.max_photos == 200
    assert settings.uploads.trust_vendor_guarantees is False


def test_yaml_values_override_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text(
        """
database:
  url: sqlite:///tmp/other.db
storage:
  driver: S3
  s3_originals_bucket: originals
  s3_variants_bucket: variants
  cdn_base_url: https://cdn.example/
variants:
  sizes: {thumb: 128, full: 2048, broken: -1}
  quality: 140
dedup:
  enabled: false
  max_distance: 3
quotas:
  member:
    max_photos: 5
    max_ingests_per_minute: 2
uploads:
  allowed_formats: [jpeg, png]
  trust_vendor_guarantees: true
""",
        encoding="utf-8",
    )

    settings = load_settings(path)

    assert settings.database.url == "sqlite:///tmp/other.db"
    assert settings.storage.driver == "s3"
    assert settings.storage.s3_originals_bucket == "originals"
    assert settings.storage.cdn_base_url == "https://cdn.example"
    assert settings.variants.sizes == {"thumb": 128, "full": 2048}
    assert settings.variants.quality == 100
    assert settings.dedup.enabled is False
    assert settings.dedup.max_distance == 3
    assert settings.dedup.window == 100
    assert settings.quotas.member.max_photos == 5
    assert settings.quotas.member.max_ingests_per_minute == 2
    assert settings.quotas.member.max_bytes_per_day == Settings().quotas.member.max_bytes_per_day
    assert settings.uploads.allowed_formats == ["JPEG", "PNG"]
    assert settings.uploads.trust_vendor_guarantees is True


def test_wrongly_typed_values_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("dedup:\n  window: many\n  enabled: 'yes'\nrate_limit: [1, 2]\n", encoding="utf-8")

    settings = load_settings(path)

    assert settings.dedup == Settings().dedup
    assert settings.rate_limit == Settings().rate_limit


def test_non_mapping_file_yields_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    assert load_settings(path) == Settings()


def test_environment_overrides_win(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("database:\n  url: sqlite:///from-file.db\n", encoding="utf-8")
    monkeypatch.setenv("GALLERY_INGEST_DATABASE_URL", "postgresql+psycopg://localhost/gallery")
    monkeypatch.setenv("GALLERY_INGEST_STORAGE_DRIVER", " S3 ")
    monkeypatch.setenv("S3_ACCESS_KEY_ID", "key")
    monkeypatch.setenv("S3_SECRET_ACCESS_KEY", "secret")

    settings = load_settings(path)

    assert settings.database.url == "postgresql+psycopg://localhost/gallery"
    assert settings.storage.driver == "s3"
    assert (settings.storage.s3_access_key_id, settings.storage.s3_secret_access_key) == ("key", "secret")


def test_settings_path_from_environment(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "custom.yaml"
    path.write_text("rate_limit:\n  capacity: 3\n", encoding="utf-8")
    monkeypatch.setenv("GALLERY_INGEST_SETTINGS", str(path))

    assert load_settings().rate_limit.capacity == 3


def test_idempotency_lease_is_configurable(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("idempotency:\n  lease_seconds: 30\n", encoding="utf-8")

    assert Settings().idempotency.lease_seconds == 120.0
    assert load_settings(path).idempotency.lease_seconds == 30.0

    path.write_text("idempotency:\n  lease_seconds: -5\n", encoding="utf-8")
    assert load_settings(path).idempotency.lease_seconds == 120.0
