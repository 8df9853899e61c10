from __future__ import annotations

import pytest

from app.monitoring.metrics import relay_room_subscriptions, relay_soft_failures_total
from huddle.realtime import AccessDenied, NotFound, OutboundEvent, RoomMembership, fan_out


class BrokenStore:
    async def find_chats_by_participant(self, user_id: int):
        raise ConnectionError("database unavailable")


def test_fan_out_excludes_and_deduplicates() -> None:
    assert fan_out(["b", "a", "b", "c"], exclude={"c"}) == ["a", "b"]
    assert fan_out([], exclude={"a"}) == []
    assert fan_out({"a"}) == ["a"]


def test_subscribe_tracks_both_directions(rooms) -> None:
    assert rooms.subscribe(1, "sid-a") is True
    assert rooms.subscribe(1, "sid-a") is False
    rooms.subscribe(2, "sid-a")
    rooms.subscribe(1, "sid-b")

    assert rooms.members(1) == {"sid-a", "sid-b"}
    assert rooms.rooms_for("sid-a") == {1, 2}
    assert relay_room_subscriptions.value() == 3

    assert rooms.drop_connection("sid-a") == {1, 2}
    assert rooms.members(1) == {"sid-b"}
    assert rooms.members(2) == frozenset()
    assert rooms.rooms_for("sid-a") == frozenset()
    assert relay_room_subscriptions.value() == 1


def test_unsubscribe_never_joined_is_noop(rooms) -> None:
    assert rooms.unsubscribe(5, "sid-a") is False
    assert rooms.members(5) == frozenset()


@pytest.mark.anyio("asyncio")
async def test_sync_rooms_subscribes_to_every_chat(rooms, seed) -> None:
    outcome = await rooms.sync_rooms("sid-a", seed.alice)

    assert outcome.ok
    assert outcome.affected == 2
    assert rooms.rooms_for("sid-a") == {seed.group, seed.direct}


@pytest.mark.anyio("asyncio")
async def test_sync_rooms_failure_is_soft(emitter) -> None:
    rooms = RoomMembership(BrokenStore(), emitter)

    outcome = await rooms.sync_rooms("sid-a", 1)

    assert not outcome.ok
    assert outcome.step == "room_sync"
    assert isinstance(outcome.error, ConnectionError)
    assert rooms.rooms_for("sid-a") == frozenset()
    assert relay_soft_failures_total.value("room_sync") == 1


@pytest.mark.anyio("asyncio")
async def test_join_room_requires_existing_chat(rooms, seed, emitter) -> None:
    with pytest.raises(NotFound) as excinfo:
        await rooms.join_room("sid-a", 9999, seed.alice)

    assert excinfo.value.message == "Chat not found"
    assert rooms.rooms_for("sid-a") == frozenset()
    assert emitter.events == []


@pytest.mark.anyio("asyncio")
async def test_join_room_requires_participation(rooms, seed, emitter) -> None:
    with pytest.raises(AccessDenied):
        await rooms.join_room("sid-a", seed.private, seed.alice)

    assert rooms.members(seed.private) == frozenset()
    assert emitter.events == []


@pytest.mark.anyio("asyncio")
async def test_join_and_leave_room(rooms, seed, emitter) -> None:
    await rooms.join_room("sid-a", seed.group, seed.alice)
    assert rooms.members(seed.group) == {"sid-a"}

    await rooms.leave_room("sid-a", seed.group)
    # Leaving a room that was never joined still acknowledges.
    await rooms.leave_room("sid-a", seed.direct)

    assert rooms.members(seed.group) == frozenset()
    assert emitter.for_sid("sid-a") == [
        (OutboundEvent.JOINED_CHAT.value, {"chatId": seed.group}),
        (OutboundEvent.LEFT_CHAT.value, {"chatId": seed.group}),
        (OutboundEvent.LEFT_CHAT.value, {"chatId": seed.direct}),
    ]


@pytest.mark.anyio("asyncio")
async def test_broadcast_skips_failed_deliveries(rooms, emitter) -> None:
    rooms.subscribe(1, "sid-a")
    rooms.subscribe(1, "sid-b")
    rooms.subscribe(1, "sid-c")
    emitter.failing.add("sid-b")

    delivered = await rooms.broadcast(1, OutboundEvent.USER_TYPING, {"chatId": 1}, exclude={"sid-c"})

    assert delivered == 1
    assert [to for _, _, to in emitter.events] == ["sid-a"]
