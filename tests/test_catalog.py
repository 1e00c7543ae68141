from __future__ import annotations

import pytest

from gallery_ingest.catalog import AuditAction, AuditEntry, CatalogEntry, PhotoStatus, SqlCatalog
from gallery_ingest.errors import AccountRequired


def _entry(entry_id: str, *, owner: str | None = "u1", created_at: float = 100.0, size: int = 10, **overrides) -> CatalogEntry:
    values = dict(
        id=entry_id,
        status=PhotoStatus.APPROVED,
        original_key=f"{entry_id}.png",
        variant_urls={"sm": f"/cdn/{entry_id}/sm.webp"},
        width=64,
        height=48,
        size_bytes=size,
        created_at=created_at,
        updated_at=created_at,
        perceptual_hash="0" * 16,
        owner_id=owner,
    )
    values.update(overrides)
    return CatalogEntry(**values)


@pytest.fixture()
def catalog(tmp_path) -> SqlCatalog:
    repo = SqlCatalog(tmp_path / "gallery.db", clock=lambda: 500.0)
    repo.provision_account("u1", "member", "u1@example.com")
    return repo


def test_insert_round_trips_entry(catalog: SqlCatalog) -> None:
    result = catalog.insert(_entry("p1"))

    assert result.created is True
    stored = catalog.get_by_id("p1")
    assert stored == result.entry
    assert stored.variant_urls == {"sm": "/cdn/p1/sm.webp"}
    assert catalog.get_by_original_key("p1.png").id == "p1"


def test_insert_conflict_returns_existing_row(catalog: SqlCatalog) -> None:
    catalog.insert(_entry("p1", width=64))

    second = catalog.insert(_entry("p1", width=999))

    assert second.created is False
    assert second.entry.width == 64


def test_insert_without_account_raises_account_required(catalog: SqlCatalog) -> None:
    with pytest.raises(AccountRequired) as excinfo:
        catalog.insert(_entry("p2", owner="ghost"))

    assert excinfo.value.to_payload()["actorId"] == "ghost"
    assert excinfo.value.status == 409
    assert catalog.get_by_id("p2") is None


def test_list_recent_newest_first_and_excludes_soft_deleted(catalog: SqlCatalog) -> None:
    catalog.insert(_entry("old", created_at=1.0))
    catalog.insert(_entry("mid", created_at=2.0))
    catalog.insert(_entry("new", created_at=3.0))
    catalog.soft_delete("mid")

    assert [entry.id for entry in catalog.list_recent(10)] == ["new", "old"]
    assert [entry.id for entry in catalog.list_recent(1)] == ["new"]


def test_public_listing_hides_soft_deleted_and_unapproved(catalog: SqlCatalog) -> None:
    catalog.insert(_entry("visible", created_at=1.0))
    catalog.insert(_entry("hidden", created_at=2.0))
    catalog.insert(_entry("pending", created_at=3.0, status=PhotoStatus.PENDING))
    catalog.soft_delete("hidden")

    assert [entry.id for entry in catalog.list_public()] == ["visible"]

    restored = catalog.restore("hidden")
    assert restored is not None and restored.deleted_at is None
    assert [entry.id for entry in catalog.list_public()] == ["hidden", "visible"]


def test_quota_counts_are_per_owner(catalog: SqlCatalog) -> None:
    catalog.provision_account("u2", "member")
    catalog.insert(_entry("a", owner="u1", created_at=100.0, size=10))
    catalog.insert(_entry("b", owner="u1", created_at=200.0, size=20))
    catalog.insert(_entry("c", owner="u2", created_at=200.0, size=40))
    catalog.insert(_entry("d", owner="u1", created_at=200.0, size=80, status=PhotoStatus.REJECTED))
    catalog.soft_delete("a")

    assert catalog.count_approved_for_quota("u1") == 1
    assert catalog.bytes_ingested_since("u1", since=150.0) == 100
    assert catalog.bytes_ingested_since("nobody", since=0.0) == 0


def test_set_status_records_reason_only_for_rejections(catalog: SqlCatalog) -> None:
    catalog.insert(_entry("p1"))

    rejected = catalog.set_status("p1", PhotoStatus.REJECTED, "blurry")
    assert rejected.status is PhotoStatus.REJECTED
    assert rejected.rejection_reason == "blurry"
    assert rejected.updated_at == 500.0

    approved = catalog.set_status("p1", PhotoStatus.APPROVED, "ignored")
    assert approved.rejection_reason is None
    assert catalog.set_status("missing", PhotoStatus.APPROVED) is None


def test_delete_removes_row_but_keeps_audit(catalog: SqlCatalog) -> None:
    catalog.insert(_entry("p1"))
    catalog.append_audit(AuditEntry(entry_id="p1", action=AuditAction.INGESTED, actor="u1", at=1.0))
    catalog.append_audit(AuditEntry(entry_id="p1", action=AuditAction.DELETED, actor="admin", reason="spam", at=2.0))

    assert catalog.delete("p1") is True
    assert catalog.delete("p1") is False
    assert catalog.get_by_id("p1") is None
    assert [(item.action, item.reason) for item in catalog.list_audit("p1")] == [
        (AuditAction.INGESTED, None),
        (AuditAction.DELETED, "spam"),
    ]


def test_provision_account_refreshes_role(catalog: SqlCatalog) -> None:
    catalog.provision_account("u1", "admin")

    account = catalog.get_account("u1")
    assert account is not None
    assert account.role == "admin"
    assert catalog.get_account("nobody") is None
