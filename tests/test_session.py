from __future__ import annotations

import pytest

from gallery_ingest.roles import Role, is_at_least, parse_role
from gallery_ingest.session import HeaderSession, StaticSession


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("admin", Role.ADMIN),
        (" Member ", Role.MEMBER),
        ("creator", Role.MEMBER),
        ("moderator", Role.ADMIN),
        ("superuser", Role.VIEWER),
        (None, Role.VIEWER),
        (Role.ADMIN, Role.ADMIN),
    ],
)
def test_parse_role(raw, expected: Role) -> None:
    assert parse_role(raw) is expected


def test_role_ordering() -> None:
    assert is_at_least(Role.ADMIN, Role.MEMBER)
    assert is_at_least(Role.MEMBER, Role.MEMBER)
    assert not is_at_least(Role.VIEWER, Role.MEMBER)


def test_header_session_resolves_actor() -> None:
    actor = HeaderSession({"X-Actor-Id": " u1 ", "X-Actor-Role": "admin", "X-Actor-Email": "u1@example.com"}).get_actor()

    assert actor is not None
    assert (actor.id, actor.role, actor.email) == ("u1", Role.ADMIN, "u1@example.com")


def test_header_session_without_id_is_anonymous() -> None:
    assert HeaderSession({"X-Actor-Role": "admin"}).get_actor() is None
    assert HeaderSession({"X-Actor-Id": "   "}).get_actor() is None


def test_static_sessions() -> None:
    assert StaticSession.anonymous().get_actor() is None
    assert StaticSession.for_user("u2", "member").get_actor().role is Role.MEMBER
