"""Chat room subscriptions and fan-out."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, Set

from app.monitoring.metrics import relay_room_subscriptions, relay_soft_failures_total

from .emitter import Emitter, safe_emit
from .errors import AccessDenied, NotFound, StepOutcome
from .events import OutboundEvent
from .store import ChatStore

logger = logging.getLogger(__name__)


def fan_out(members: Iterable[str], exclude: Iterable[str] | None = None) -> list[str]:
    """Return the connections that should receive a room event."""

    excluded = set(exclude or ())
    return sorted(sid for sid in set(members) if sid not in excluded)


class RoomMembership:
    """Maps chat ids to subscribed connections and back.

    Mutations never await, so each subscribe/unsubscribe is atomic with
    respect to other handlers running on the event loop.
    """

    def __init__(self, store: ChatStore, emitter: Emitter) -> None:
        self._store = store
        self._emitter = emitter
        self._members: Dict[int, Set[str]] = defaultdict(set)
        self._connection_rooms: Dict[str, Set[int]] = defaultdict(set)

    # ------------------------------------------------------------------
    # Membership map
    # ------------------------------------------------------------------

    def subscribe(self, chat_id: int, sid: str) -> bool:
        bucket = self._members[chat_id]
        if sid in bucket:
            return False
        bucket.add(sid)
        self._connection_rooms[sid].add(chat_id)
        relay_room_subscriptions.inc()
        return True

    def unsubscribe(self, chat_id: int, sid: str) -> bool:
        bucket = self._members.get(chat_id)
        if not bucket or sid not in bucket:
            return False
        bucket.discard(sid)
        if not bucket:
            self._members.pop(chat_id, None)
        rooms = self._connection_rooms.get(sid)
        if rooms is not None:
            rooms.discard(chat_id)
            if not rooms:
                self._connection_rooms.pop(sid, None)
        relay_room_subscriptions.dec()
        return True

    def drop_connection(self, sid: str) -> set[int]:
        """Remove *sid* from every room it was subscribed to."""

        rooms = set(self._connection_rooms.get(sid, ()))
        for chat_id in rooms:
            self.unsubscribe(chat_id, sid)
        return rooms

    def members(self, chat_id: int) -> frozenset[str]:
        return frozenset(self._members.get(chat_id, ()))

    def rooms_for(self, sid: str) -> frozenset[int]:
        return frozenset(self._connection_rooms.get(sid, ()))

    # ------------------------------------------------------------------
    # Storage-backed operations
    # ------------------------------------------------------------------

    async def sync_rooms(self, sid: str, user_id: int) -> StepOutcome:
        """Subscribe *sid* to every chat *user_id* participates in."""

        try:
            chats = await self._store.find_chats_by_participant(user_id)
        except Exception as exc:
            logger.warning(
                "Room sync failed for user %s on %s; continuing without chat rooms",
                user_id,
                sid,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            relay_soft_failures_total.labels("room_sync").inc()
            return StepOutcome.failure("room_sync", exc)

        joined = 0
        for chat in chats:
            if self.subscribe(chat.id, sid):
                joined += 1
        logger.debug("Subscribed %s to %d chat rooms for user %s", sid, joined, user_id)
        return StepOutcome.success("room_sync", affected=joined)

    async def join_room(self, sid: str, chat_id: int, user_id: int) -> None:
        chat = await self._store.find_chat_by_id(chat_id)
        if chat is None:
            raise NotFound("Chat not found")
        if not chat.has_participant(user_id):
            raise AccessDenied("Access denied")

        self.subscribe(chat.id, sid)
        await safe_emit(self._emitter, sid, OutboundEvent.JOINED_CHAT, {"chatId": chat.id})
        logger.info("User %s joined chat %s", user_id, chat.id)

    async def leave_room(self, sid: str, chat_id: int) -> None:
        self.unsubscribe(chat_id, sid)
        await safe_emit(self._emitter, sid, OutboundEvent.LEFT_CHAT, {"chatId": chat_id})

    async def broadcast(
        self,
        chat_id: int,
        event: OutboundEvent,
        payload: dict[str, Any],
        *,
        exclude: Iterable[str] | None = None,
    ) -> int:
        """Send *event* to the room, returning the number of deliveries."""

        delivered = 0
        for sid in fan_out(self.members(chat_id), exclude):
            if await safe_emit(self._emitter, sid, event, payload):
                delivered += 1
        return delivered
