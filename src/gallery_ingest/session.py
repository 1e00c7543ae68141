"""Session collaborators that resolve the acting identity for a request."""

from __future__ import annotations

from typing import Mapping, Protocol

from gallery_ingest.roles import Actor, Role, parse_role

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_EMAIL_HEADER = "X-Actor-Email"
ACTOR_ROLE_HEADER = "X-Actor-Role"


class SessionProvider(Protocol):
    def get_actor(self) -> Actor | None: ...


class StaticSession:
    """Fixed identity, used by the CLI and tests."""

    def __init__(self, actor: Actor | None) -> None:
        self._actor = actor

    @classmethod
    def for_user(cls, actor_id: str, role: Role | str = Role.MEMBER, email: str | None = None) -> StaticSession:
        return cls(Actor(id=actor_id, role=parse_role(role), email=email))

    @classmethod
    def anonymous(cls) -> StaticSession:
        return cls(None)

    def get_actor(self) -> Actor | None:
        return self._actor


class HeaderSession:
    """Identity forwarded by an authenticating proxy in request headers.

    A missing or blank ``X-Actor-Id`` means there is no session. An unknown
    role header degrades to ``viewer``.
    """

    def __init__(self, headers: Mapping[str, str]) -> None:
        self._headers = headers

    def get_actor(self) -> Actor | None:
        actor_id = (self._headers.get(ACTOR_ID_HEADER) or "").strip()
        if not actor_id:
            return None
        email = (self._headers.get(ACTOR_EMAIL_HEADER) or "").strip() or None
        return Actor(id=actor_id, role=parse_role(self._headers.get(ACTOR_ROLE_HEADER)), email=email)


__all__ = [
    "ACTOR_EMAIL_HEADER",
    "ACTOR_ID_HEADER",
    "ACTOR_ROLE_HEADER",
    "HeaderSession",
    "SessionProvider",
    "StaticSession",
]
