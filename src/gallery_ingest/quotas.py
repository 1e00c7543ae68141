"""Per-role quota ceilings and the pure quota evaluator."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from gallery_ingest.catalog import CatalogPort
from gallery_ingest.config import QuotaConfig, RoleQuota
from gallery_ingest.errors import QuotaExceeded
from gallery_ingest.roles import Role

ZERO_QUOTA = RoleQuota(max_photos=0, max_bytes_per_day=0, max_ingests_per_minute=0)


@dataclass(frozen=True)
class Usage:
    """Resources already consumed by one owner."""

    photos: int
    bytes_today: int


def quota_for_role(role: Role, quotas: QuotaConfig) -> RoleQuota:
    """Return the ceilings for ``role``; viewers always get the zero quota."""

    if role is Role.ADMIN:
        return quotas.admin
    if role is Role.MEMBER:
        return quotas.member
    return ZERO_QUOTA


def evaluate_quota(role: Role, usage: Usage, quota: RoleQuota) -> None:
    """Raise :class:`QuotaExceeded` when ``usage`` has reached a ceiling.

    The photo count is checked before the byte budget, so a caller over both
    limits sees ``photos_limit``. Viewers are rejected outright.
    """

    if role is Role.VIEWER:
        raise QuotaExceeded("photos_limit", used=usage.photos, limit=0)
    if usage.photos >= quota.max_photos:
        raise QuotaExceeded("photos_limit", used=usage.photos, limit=quota.max_photos)
    if usage.bytes_today >= quota.max_bytes_per_day:
        raise QuotaExceeded("bytes_limit", used=usage.bytes_today, limit=quota.max_bytes_per_day)


def start_of_utc_day(now: float) -> float:
    moment = dt.datetime.fromtimestamp(now, tz=dt.timezone.utc)
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.timestamp()


def snapshot_usage(catalog: CatalogPort, owner_id: str, now: float) -> Usage:
    """Query the catalog for ``owner_id``'s approved photos and today's bytes."""

    return Usage(
        photos=catalog.count_approved_for_quota(owner_id),
        bytes_today=catalog.bytes_ingested_since(owner_id, start_of_utc_day(now)),
    )


__all__ = ["Usage", "ZERO_QUOTA", "evaluate_quota", "quota_for_role", "snapshot_usage", "start_of_utc_day"]
