"""Actor roles and identities."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Tiered session roles, lowest privilege first."""

    VIEWER = "viewer"
    MEMBER = "member"
    ADMIN = "admin"


RANK: dict[Role, int] = {Role.VIEWER: 0, Role.MEMBER: 1, Role.ADMIN: 2}

_ALIASES: dict[str, Role] = {
    "creator": Role.MEMBER,
    "moderator": Role.ADMIN,
}


def parse_role(raw: str | Role | None) -> Role:
    """Parse a role string; unknown or empty values fall back to ``viewer``."""

    if isinstance(raw, Role):
        return raw

    value = (raw or "").strip().lower()
    for role in Role:
        if role.value == value:
            return role
    return _ALIASES.get(value, Role.VIEWER)


def is_at_least(role: Role, minimum: Role) -> bool:
    return RANK[role] >= RANK[minimum]


@dataclass(frozen=True)
class Actor:
    """Identity resolved by the session collaborator."""

    id: str
    role: Role
    email: str | None = None


__all__ = ["Actor", "RANK", "Role", "is_at_least", "parse_role"]
