"""Per-connection event handling for the chat relay."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from app.config import Settings, get_settings
from app.monitoring.metrics import relay_connections, relay_errors_total, relay_events_total
from app.schemas import MessageRead

from .emitter import Emitter, safe_emit
from .errors import AccessDenied, NotAuthenticated, NotFound, RelayError, StepOutcome, ValidationFailed
from .events import (
    INBOUND_EVENTS,
    AuthenticatePayload,
    ChatPayload,
    EditMessagePayload,
    InboundEvent,
    MessageRefPayload,
    OutboundEvent,
    ReactionPayload,
    SendMessagePayload,
    error_payload,
    parse_payload,
)
from .presence import PresenceNotifier
from .registry import ConnectionEntry, ConnectionRegistry
from .rooms import RoomMembership
from .store import ChatStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


@dataclass(slots=True)
class ConnectionSession:
    """State of one socket connection."""

    sid: str
    state: SessionState = SessionState.UNAUTHENTICATED
    user_id: int | None = None
    external_id: str | None = None
    # Serialises this connection's handlers so events apply in arrival order.
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED


Handler = Callable[[ConnectionSession, Any], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _serialize(message: MessageRead) -> dict[str, Any]:
    return message.model_dump(mode="json", by_alias=True)


class EventRelay:
    """Validate, persist and fan out client events.

    Connection lifecycle is ``UNAUTHENTICATED -> AUTHENTICATED -> DISCONNECTED``.
    Failures are reported to the triggering connection only, as an ``error``
    event; nothing a handler raises reaches the transport.
    """

    def __init__(
        self,
        store: ChatStore,
        registry: ConnectionRegistry,
        rooms: RoomMembership,
        presence: PresenceNotifier,
        emitter: Emitter,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._rooms = rooms
        self._presence = presence
        self._emitter = emitter
        self._settings = settings or get_settings()
        self._sessions: dict[str, ConnectionSession] = {}
        self._handlers = self._build_handlers()
        missing = set(InboundEvent) - set(self._handlers)
        if missing:
            names = ", ".join(sorted(event.value for event in missing))
            raise RuntimeError(f"No relay handler registered for: {names}")

    def _build_handlers(self) -> dict[InboundEvent, Handler]:
        return {
            InboundEvent.AUTHENTICATE: self._authenticate,
            InboundEvent.JOIN_CHAT: self._join_chat,
            InboundEvent.LEAVE_CHAT: self._leave_chat,
            InboundEvent.SEND_MESSAGE: self._send_message,
            InboundEvent.TYPING_START: self._typing_start,
            InboundEvent.TYPING_STOP: self._typing_stop,
            InboundEvent.ADD_REACTION: self._add_reaction,
            InboundEvent.REMOVE_REACTION: self._remove_reaction,
            InboundEvent.EDIT_MESSAGE: self._edit_message,
            InboundEvent.DELETE_MESSAGE: self._delete_message,
            InboundEvent.MARK_READ: self._mark_read,
        }

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def rooms(self) -> RoomMembership:
        return self._rooms

    def session(self, sid: str) -> ConnectionSession | None:
        return self._sessions.get(sid)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, sid: str) -> ConnectionSession:
        session = ConnectionSession(sid=sid)
        self._sessions[sid] = session
        relay_connections.inc()
        logger.info("Connection opened: %s", sid)
        return session

    async def disconnect(self, sid: str) -> None:
        """Tear down *sid*; repeated calls for the same connection are no-ops."""

        session = self._sessions.pop(sid, None)
        if session is None:
            return
        relay_connections.dec()
        async with session.lock:
            try:
                await self._teardown(session)
            except Exception:
                logger.exception("Disconnect cleanup failed for %s", sid)
            finally:
                session.state = SessionState.DISCONNECTED
        logger.info("Connection closed: %s", sid)

    async def dispatch(self, sid: str, event: InboundEvent, data: Any = None) -> None:
        session = self._sessions.get(sid)
        if session is None:
            logger.debug("Dropping %s from unknown connection %s", event.value, sid)
            return

        spec = INBOUND_EVENTS[event]
        relay_events_total.labels(event.value, "in").inc()
        async with session.lock:
            if session.state is SessionState.DISCONNECTED:
                return
            try:
                if spec.requires_auth and not session.authenticated:
                    raise NotAuthenticated()
                payload = parse_payload(event, data)
                await self._handlers[event](session, payload)
            except RelayError as exc:
                if spec.silent:
                    logger.debug("Ignoring %s from %s: %s", event.value, sid, exc.message)
                    return
                relay_errors_total.labels(event.value, exc.kind).inc()
                await self._send_error(sid, exc.message)
            except Exception:
                logger.exception("Unhandled error while processing %s from %s", event.value, sid)
                if spec.silent:
                    return
                relay_errors_total.labels(event.value, "internal").inc()
                await self._send_error(sid, spec.failure_message)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _authenticate(self, session: ConnectionSession, payload: AuthenticatePayload) -> None:
        user = await self._store.find_user_by_external_id(payload.user_id)
        if user is None:
            raise NotFound("User not found")

        if session.authenticated and session.user_id != user.id:
            await self._teardown(session)

        session.state = SessionState.AUTHENTICATED
        session.user_id = user.id
        session.external_id = payload.user_id
        self._registry.register(
            user.id, ConnectionEntry(sid=session.sid, external_id=payload.user_id, user=user)
        )

        # The connection stays registered even if the steps below fail.
        now = _utcnow()
        await self._store.set_user_online_status(user.id, True, now)
        self._log_outcome(await self._rooms.sync_rooms(session.sid, user.id))
        self._log_outcome(
            await self._presence.notify_status_change(
                user.id, True, exclude_sid=session.sid, last_seen=now
            )
        )

        await safe_emit(
            self._emitter,
            session.sid,
            OutboundEvent.AUTHENTICATED,
            {"userId": user.id, "message": "Successfully authenticated"},
        )
        logger.info("User authenticated: %s (%s)", user.username, session.sid)

    async def _join_chat(self, session: ConnectionSession, payload: ChatPayload) -> None:
        await self._rooms.join_room(session.sid, payload.chat_id, session.user_id)

    async def _leave_chat(self, session: ConnectionSession, payload: ChatPayload) -> None:
        await self._rooms.leave_room(session.sid, payload.chat_id)
        logger.info("User %s left chat %s", session.user_id, payload.chat_id)

    async def _send_message(self, session: ConnectionSession, payload: SendMessagePayload) -> None:
        chat = await self._store.find_chat_by_id(payload.chat_id)
        if chat is None:
            raise NotFound("Chat not found")
        if not chat.has_participant(session.user_id):
            raise AccessDenied("Access denied")

        content = payload.content
        if not content.text.strip() and content.file is None:
            raise ValidationFailed("Message must contain text or a file")
        max_length = self._settings.chat_message_max_length
        if len(content.text) > max_length:
            raise ValidationFailed(f"Message exceeds maximum length of {max_length} characters")

        if payload.reply_to is not None:
            target = await self._store.find_message_by_id(payload.reply_to)
            if target is None or target.chat_id != chat.id:
                raise NotFound("Reply target not found")

        message = await self._store.create_message(
            chat.id,
            session.user_id,
            text=content.text,
            content_type=content.type,
            file=content.file,
            reply_to_id=payload.reply_to,
        )
        await self._store.record_last_message(chat.id, message.id, message.created_at)

        # A participant always hears its own messages, even before an explicit join.
        self._rooms.subscribe(chat.id, session.sid)
        await self._rooms.broadcast(
            chat.id,
            OutboundEvent.NEW_MESSAGE,
            {"message": _serialize(message), "chatId": chat.id},
        )
        logger.info("Message %s sent in chat %s by user %s", message.id, chat.id, session.user_id)

    async def _typing_start(self, session: ConnectionSession, payload: ChatPayload) -> None:
        await self._rooms.broadcast(
            payload.chat_id,
            OutboundEvent.USER_TYPING,
            {"userId": session.user_id, "chatId": payload.chat_id},
            exclude={session.sid},
        )

    async def _typing_stop(self, session: ConnectionSession, payload: ChatPayload) -> None:
        await self._rooms.broadcast(
            payload.chat_id,
            OutboundEvent.USER_STOPPED_TYPING,
            {"userId": session.user_id, "chatId": payload.chat_id},
            exclude={session.sid},
        )

    async def _add_reaction(self, session: ConnectionSession, payload: ReactionPayload) -> None:
        self._check_emoji(payload.emoji)
        message = await self._store.find_message_by_id(payload.message_id)
        if message is None:
            raise NotFound("Message not found")

        await self._store.upsert_reaction(message.id, session.user_id, payload.emoji)
        await self._rooms.broadcast(
            message.chat_id,
            OutboundEvent.REACTION_ADDED,
            {"messageId": message.id, "userId": session.user_id, "emoji": payload.emoji},
        )

    async def _remove_reaction(self, session: ConnectionSession, payload: ReactionPayload) -> None:
        message = await self._store.find_message_by_id(payload.message_id)
        if message is None:
            raise NotFound("Message not found")

        if not await self._store.remove_reaction(message.id, session.user_id, payload.emoji):
            logger.debug("No %s reaction by user %s on message %s", payload.emoji, session.user_id, message.id)
            return
        await self._rooms.broadcast(
            message.chat_id,
            OutboundEvent.REACTION_REMOVED,
            {"messageId": message.id, "userId": session.user_id, "emoji": payload.emoji},
        )

    async def _edit_message(self, session: ConnectionSession, payload: EditMessagePayload) -> None:
        message = await self._store.find_message_by_id(payload.message_id)
        if message is None or message.is_deleted:
            raise NotFound("Message not found")
        if message.sender_id != session.user_id:
            raise AccessDenied("You can only edit your own messages")

        window = timedelta(hours=self._settings.message_edit_window_hours)
        if _as_utc(message.created_at) < _utcnow() - window:
            raise ValidationFailed("Message is too old to edit")
        text = payload.text.strip()
        if not text:
            raise ValidationFailed("Message content is required")
        max_length = self._settings.chat_message_max_length
        if len(text) > max_length:
            raise ValidationFailed(f"Message exceeds maximum length of {max_length} characters")

        updated = await self._store.edit_message(message.id, text)
        await self._rooms.broadcast(
            updated.chat_id,
            OutboundEvent.MESSAGE_EDITED,
            {"message": _serialize(updated), "chatId": updated.chat_id},
        )

    async def _delete_message(self, session: ConnectionSession, payload: MessageRefPayload) -> None:
        message = await self._store.find_message_by_id(payload.message_id)
        if message is None or message.is_deleted:
            raise NotFound("Message not found")
        if message.sender_id != session.user_id:
            chat = await self._store.find_chat_by_id(message.chat_id)
            if chat is None or not chat.is_admin(session.user_id):
                raise AccessDenied("You can only delete your own messages or be a chat admin")

        await self._store.soft_delete_message(message.id)
        await self._rooms.broadcast(
            message.chat_id,
            OutboundEvent.MESSAGE_DELETED,
            {"messageId": message.id, "chatId": message.chat_id},
        )

    async def _mark_read(self, session: ConnectionSession, payload: ChatPayload) -> None:
        now = _utcnow()
        if not await self._store.update_participant_last_read(payload.chat_id, session.user_id, now):
            return
        await self._rooms.broadcast(
            payload.chat_id,
            OutboundEvent.MESSAGES_READ,
            {"userId": session.user_id, "chatId": payload.chat_id, "timestamp": now.isoformat()},
            exclude={session.sid},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _teardown(self, session: ConnectionSession) -> None:
        """Release rooms, registry entry and online status held by *session*."""

        self._rooms.drop_connection(session.sid)
        if not session.authenticated or session.user_id is None:
            return

        user_id = session.user_id
        session.state = SessionState.UNAUTHENTICATED
        session.user_id = None
        session.external_id = None

        if not self._registry.remove(user_id, sid=session.sid):
            logger.info(
                "User %s is connected elsewhere; keeping online status after %s closed",
                user_id,
                session.sid,
            )
            return

        now = _utcnow()
        await self._store.set_user_online_status(user_id, False, now)
        self._log_outcome(
            await self._presence.notify_status_change(
                user_id, False, exclude_sid=session.sid, last_seen=now
            )
        )
        logger.info("User went offline: %s (%s)", user_id, session.sid)

    def _check_emoji(self, emoji: str) -> None:
        if len(emoji) > self._settings.reaction_emoji_max_length:
            raise ValidationFailed("Emoji is too long")

    async def _send_error(self, sid: str, message: str) -> None:
        await safe_emit(self._emitter, sid, OutboundEvent.ERROR, error_payload(message))

    @staticmethod
    def _log_outcome(outcome: StepOutcome) -> None:
        if not outcome.ok:
            logger.info("Skipped %s: %s", outcome.step, outcome.detail)
