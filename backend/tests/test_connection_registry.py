from __future__ import annotations

from app.monitoring.metrics import relay_registered_users
from app.schemas import UserSnapshot
from huddle.realtime import ConnectionEntry, ConnectionRegistry


def _entry(sid: str, user_id: int = 1) -> ConnectionEntry:
    user = UserSnapshot(id=user_id, username=f"user{user_id}", external_id=f"ext-{user_id}")
    return ConnectionEntry(sid=sid, external_id=user.external_id, user=user)


def test_register_and_lookup() -> None:
    registry = ConnectionRegistry()

    assert registry.register(1, _entry("sid-a")) is None

    entry = registry.lookup(1)
    assert entry is not None
    assert entry.sid == "sid-a"
    assert entry.user_id == 1
    assert len(registry) == 1
    assert registry.lookup(2) is None
    assert relay_registered_users.value() == 1


def test_register_overwrites_previous_connection() -> None:
    registry = ConnectionRegistry()
    registry.register(1, _entry("sid-a"))

    previous = registry.register(1, _entry("sid-b"))

    assert previous is not None and previous.sid == "sid-a"
    assert registry.lookup(1).sid == "sid-b"
    assert len(registry) == 1


def test_remove_ignores_stale_connection() -> None:
    registry = ConnectionRegistry()
    registry.register(1, _entry("sid-a"))
    registry.register(1, _entry("sid-b"))

    assert registry.remove(1, sid="sid-a") is False
    assert registry.lookup(1).sid == "sid-b"

    assert registry.remove(1, sid="sid-b") is True
    assert registry.lookup(1) is None
    assert relay_registered_users.value() == 0


def test_remove_unknown_user_is_noop() -> None:
    registry = ConnectionRegistry()
    registry.register(1, _entry("sid-a"))

    assert registry.remove(2) is False
    assert registry.remove(1) is True
    assert registry.remove(1) is False
    assert len(registry) == 0
