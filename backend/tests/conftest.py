"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Awaitable, Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.models import (
    Base,
    Chat,
    ChatParticipant,
    ChatType,
    FriendLink,
    FriendRequestStatus,
    ParticipantRole,
    User,
    UserBlock,
)
from app.monitoring.registry import registry as metrics_registry
from app.services import SqlChatStore
from huddle.realtime import (
    ConnectionRegistry,
    EventRelay,
    InboundEvent,
    PresenceNotifier,
    RoomMembership,
)


class FakeEmitter:
    """Records emitted events instead of sending them."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any], str]] = []
        self.failing: set[str] = set()

    async def emit(self, event: str, payload: dict[str, Any], to: str) -> None:
        if to in self.failing:
            raise ConnectionError(f"{to} is gone")
        self.events.append((event, payload, to))

    def for_sid(self, sid: str) -> list[tuple[str, dict[str, Any]]]:
        return [(event, payload) for event, payload, to in self.events if to == sid]

    def named(self, event: str) -> list[tuple[dict[str, Any], str]]:
        return [(payload, to) for name, payload, to in self.events if name == event]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    for metric in metrics_registry._metrics.values():
        metric.reset()
    yield
    for metric in metrics_registry._metrics.values():
        metric.reset()


@pytest.fixture()
def settings() -> Settings:
    return Settings(database_dsn="sqlite+pysqlite:///:memory:", debug=False)


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, expire_on_commit=False, future=True)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for assertions against stored rows."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seed(session_factory) -> SimpleNamespace:
    """Create users, friendships and chats shared by the relay tests.

    Alice is friends with Bob and Carol, has a pending request from Dave and has
    blocked Eve despite an accepted link. Chat ``group`` holds Alice (admin) and
    Bob, ``direct`` holds Alice and Carol, and ``private`` holds Bob and Carol.
    """

    with session_factory() as db:
        users = {}
        for name in ("alice", "bob", "carol", "dave", "eve"):
            user = User(
                external_id=f"ext-{name}",
                email=f"{name}@example.com",
                username=name,
                first_name=name.title(),
            )
            db.add(user)
            users[name] = user
        db.flush()

        alice = users["alice"]
        for friend in ("bob", "carol", "eve"):
            db.add(
                FriendLink(
                    requester_id=alice.id,
                    addressee_id=users[friend].id,
                    status=FriendRequestStatus.ACCEPTED,
                )
            )
        db.add(FriendLink(requester_id=users["dave"].id, addressee_id=alice.id))
        db.add(UserBlock(blocker_id=alice.id, blocked_id=users["eve"].id))

        group = Chat(type=ChatType.GROUP, name="Weekend", creator_id=alice.id)
        group.participants = [
            ChatParticipant(user_id=alice.id, role=ParticipantRole.ADMIN),
            ChatParticipant(user_id=users["bob"].id),
        ]
        direct = Chat(type=ChatType.DIRECT)
        direct.participants = [
            ChatParticipant(user_id=alice.id),
            ChatParticipant(user_id=users["carol"].id),
        ]
        private = Chat(type=ChatType.DIRECT)
        private.participants = [
            ChatParticipant(user_id=users["bob"].id),
            ChatParticipant(user_id=users["carol"].id),
        ]
        db.add_all([group, direct, private])
        db.commit()

        return SimpleNamespace(
            **{name: user.id for name, user in users.items()},
            group=group.id,
            direct=direct.id,
            private=private.id,
        )


@pytest.fixture()
def store(session_factory) -> SqlChatStore:
    return SqlChatStore(session_factory)


@pytest.fixture()
def emitter() -> FakeEmitter:
    return FakeEmitter()


@pytest.fixture()
def connection_registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture()
def rooms(store, emitter) -> RoomMembership:
    return RoomMembership(store, emitter)


@pytest.fixture()
def presence(store, connection_registry, emitter) -> PresenceNotifier:
    return PresenceNotifier(store, connection_registry, emitter)


@pytest.fixture()
def relay(store, connection_registry, rooms, presence, emitter, settings) -> EventRelay:
    return EventRelay(store, connection_registry, rooms, presence, emitter, settings=settings)


@pytest.fixture()
def login(relay, emitter) -> Callable[[str, str], Awaitable[None]]:
    """Open *sid* and authenticate it as ``ext-<name>``, then forget the emitted events."""

    async def _login(sid: str, name: str) -> None:
        await relay.connect(sid)
        await relay.dispatch(sid, InboundEvent.AUTHENTICATE, {"userId": f"ext-{name}"})
        emitter.clear()

    return _login
