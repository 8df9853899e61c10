"""SQLAlchemy implementation of the relay's storage operations."""

from __future__ import annotations

import functools
import logging
from datetime import datetime, timezone
from typing import Callable, TypeVar

import anyio.to_thread
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from app.models import (
    Chat,
    ChatParticipant,
    FriendLink,
    FriendRequestStatus,
    Message,
    MessageEdit,
    MessageReaction,
    User,
    UserBlock,
)
from app.models.enums import ContentType
from app.schemas import (
    ChatSnapshot,
    FileMeta,
    MessageRead,
    ParticipantRead,
    ReactionRead,
    ReplySummary,
    UserPublic,
    UserSnapshot,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DELETED_MESSAGE_TEXT = "[Message deleted]"


def _aware(value: datetime | None) -> datetime | None:
    """Attach UTC to timestamps read back from backends that drop the offset."""

    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _friend_ids(user_id: int, db: Session) -> list[int]:
    stmt = select(FriendLink).where(
        FriendLink.status == FriendRequestStatus.ACCEPTED,
        or_(
            FriendLink.requester_id == user_id,
            FriendLink.addressee_id == user_id,
        ),
    )
    links = db.execute(stmt).scalars().all()
    friends: list[int] = []
    for link in links:
        if link.requester_id == user_id:
            friends.append(link.addressee_id)
        else:
            friends.append(link.requester_id)

    blocks = db.execute(
        select(UserBlock.blocker_id, UserBlock.blocked_id).where(
            or_(UserBlock.blocker_id == user_id, UserBlock.blocked_id == user_id)
        )
    ).all()
    blocked = {blocked_id if blocker_id == user_id else blocker_id for blocker_id, blocked_id in blocks}
    return sorted({friend for friend in friends if friend not in blocked})


def _serialize_public(user: User | None) -> UserPublic | None:
    if user is None:
        return None
    return UserPublic.model_validate(user)


def _serialize_user(user: User, db: Session) -> UserSnapshot:
    return UserSnapshot(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        avatar=user.avatar,
        external_id=user.external_id,
        is_online=user.is_online,
        last_seen=_aware(user.last_seen),
        friend_ids=_friend_ids(user.id, db),
    )


def _serialize_chat(chat: Chat) -> ChatSnapshot:
    return ChatSnapshot(
        id=chat.id,
        type=chat.type,
        name=chat.name,
        participants=[
            ParticipantRead(
                user_id=participant.user_id,
                role=participant.role,
                joined_at=_aware(participant.joined_at),
                last_read=_aware(participant.last_read),
            )
            for participant in chat.participants
        ],
        last_message_id=chat.last_message_id,
        last_activity=_aware(chat.last_activity),
        is_active=chat.is_active,
    )


def _serialize_message(message: Message) -> MessageRead:
    file_meta = None
    if message.file_url:
        file_meta = FileMeta(
            url=message.file_url,
            name=message.file_name,
            size=message.file_size,
            mime_type=message.file_mime_type,
        )
    reply = None
    if message.reply_to is not None:
        reply = ReplySummary(
            id=message.reply_to.id,
            text=message.reply_to.content_text,
            sender=_serialize_public(message.reply_to.sender),
        )
    return MessageRead(
        id=message.id,
        chat_id=message.chat_id,
        sender_id=message.sender_id,
        sender=_serialize_public(message.sender),
        text=message.content_text,
        type=message.content_type,
        file=file_meta,
        reply_to=reply,
        reactions=[
            ReactionRead(user_id=reaction.user_id, emoji=reaction.emoji, created_at=_aware(reaction.created_at))
            for reaction in message.reactions
        ],
        is_edited=message.is_edited,
        is_deleted=message.is_deleted,
        deleted_at=_aware(message.deleted_at),
        created_at=_aware(message.created_at),
        updated_at=_aware(message.updated_at),
    )


def _load_message(message_id: int, db: Session) -> Message | None:
    stmt = (
        select(Message)
        .where(Message.id == message_id)
        .options(
            selectinload(Message.sender),
            selectinload(Message.reactions),
            selectinload(Message.reply_to).selectinload(Message.sender),
        )
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalar_one_or_none()


def _require_message(message_id: int, db: Session) -> Message:
    message = _load_message(message_id, db)
    if message is None:
        raise LookupError(f"Message {message_id} does not exist")
    return message


class SqlChatStore:
    """Chat storage backed by a SQLAlchemy session factory.

    Each call opens a short-lived session on a worker thread so slow queries
    never block the event loop.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    async def _run(self, fn: Callable[..., T], *args, **kwargs) -> T:
        return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))

    # Users ------------------------------------------------------------

    async def find_user_by_external_id(self, external_id: str) -> UserSnapshot | None:
        return await self._run(self._find_user_by_external_id, external_id)

    def _find_user_by_external_id(self, external_id: str) -> UserSnapshot | None:
        with self._session_factory() as db:
            user = db.execute(select(User).where(User.external_id == external_id)).scalar_one_or_none()
            return _serialize_user(user, db) if user is not None else None

    async def find_user_by_id(self, user_id: int) -> UserSnapshot | None:
        return await self._run(self._find_user_by_id, user_id)

    def _find_user_by_id(self, user_id: int) -> UserSnapshot | None:
        with self._session_factory() as db:
            user = db.get(User, user_id)
            return _serialize_user(user, db) if user is not None else None

    async def find_friend_ids(self, user_id: int) -> list[int]:
        return await self._run(self._find_friend_ids, user_id)

    def _find_friend_ids(self, user_id: int) -> list[int]:
        with self._session_factory() as db:
            return _friend_ids(user_id, db)

    async def set_user_online_status(self, user_id: int, is_online: bool, last_seen: datetime) -> None:
        await self._run(self._set_user_online_status, user_id, is_online, last_seen)

    def _set_user_online_status(self, user_id: int, is_online: bool, last_seen: datetime) -> None:
        with self._session_factory() as db:
            user = db.get(User, user_id)
            if user is None:
                logger.warning("Cannot update presence of missing user %s", user_id)
                return
            user.is_online = is_online
            user.last_seen = last_seen
            db.commit()

    # Chats ------------------------------------------------------------

    async def find_chats_by_participant(self, user_id: int) -> list[ChatSnapshot]:
        return await self._run(self._find_chats_by_participant, user_id)

    def _find_chats_by_participant(self, user_id: int) -> list[ChatSnapshot]:
        with self._session_factory() as db:
            stmt = (
                select(Chat)
                .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
                .where(ChatParticipant.user_id == user_id, Chat.is_active.is_(True))
                .options(selectinload(Chat.participants))
                .order_by(Chat.last_activity.desc(), Chat.id.desc())
            )
            return [_serialize_chat(chat) for chat in db.execute(stmt).scalars().unique()]

    async def find_chat_by_id(self, chat_id: int) -> ChatSnapshot | None:
        return await self._run(self._find_chat_by_id, chat_id)

    def _find_chat_by_id(self, chat_id: int) -> ChatSnapshot | None:
        with self._session_factory() as db:
            stmt = select(Chat).where(Chat.id == chat_id).options(selectinload(Chat.participants))
            chat = db.execute(stmt).scalar_one_or_none()
            return _serialize_chat(chat) if chat is not None else None

    async def record_last_message(self, chat_id: int, message_id: int, at: datetime) -> None:
        await self._run(self._record_last_message, chat_id, message_id, at)

    def _record_last_message(self, chat_id: int, message_id: int, at: datetime) -> None:
        with self._session_factory() as db:
            chat = db.get(Chat, chat_id)
            if chat is None:
                raise LookupError(f"Chat {chat_id} does not exist")
            chat.last_message_id = message_id
            chat.last_activity = at
            db.commit()

    async def update_participant_last_read(self, chat_id: int, user_id: int, at: datetime) -> bool:
        return await self._run(self._update_participant_last_read, chat_id, user_id, at)

    def _update_participant_last_read(self, chat_id: int, user_id: int, at: datetime) -> bool:
        with self._session_factory() as db:
            stmt = select(ChatParticipant).where(
                ChatParticipant.chat_id == chat_id,
                ChatParticipant.user_id == user_id,
            )
            participant = db.execute(stmt).scalar_one_or_none()
            if participant is None:
                return False
            participant.last_read = at
            db.commit()
            return True

    async def unread_count(self, chat_id: int, user_id: int) -> int:
        return await self._run(self._unread_count, chat_id, user_id)

    def _unread_count(self, chat_id: int, user_id: int) -> int:
        with self._session_factory() as db:
            last_read = db.execute(
                select(ChatParticipant.last_read).where(
                    ChatParticipant.chat_id == chat_id,
                    ChatParticipant.user_id == user_id,
                )
            ).scalar_one_or_none()
            if last_read is None:
                return 0
            stmt = select(func.count(Message.id)).where(
                Message.chat_id == chat_id,
                Message.created_at > last_read,
                Message.sender_id != user_id,
                Message.is_deleted.is_(False),
            )
            return int(db.execute(stmt).scalar_one())

    # Messages ---------------------------------------------------------

    async def create_message(
        self,
        chat_id: int,
        sender_id: int,
        *,
        text: str,
        content_type: ContentType = ContentType.TEXT,
        file: FileMeta | None = None,
        reply_to_id: int | None = None,
        created_at: datetime | None = None,
    ) -> MessageRead:
        return await self._run(
            self._create_message,
            chat_id,
            sender_id,
            text=text,
            content_type=content_type,
            file=file,
            reply_to_id=reply_to_id,
            created_at=created_at,
        )

    def _create_message(
        self,
        chat_id: int,
        sender_id: int,
        *,
        text: str,
        content_type: ContentType,
        file: FileMeta | None,
        reply_to_id: int | None,
        created_at: datetime | None,
    ) -> MessageRead:
        with self._session_factory() as db:
            message = Message(
                chat_id=chat_id,
                sender_id=sender_id,
                content_text=text,
                content_type=content_type,
                reply_to_id=reply_to_id,
            )
            if file is not None:
                message.file_url = file.url
                message.file_name = file.name
                message.file_size = file.size
                message.file_mime_type = file.mime_type
            if created_at is not None:
                message.created_at = created_at
                message.updated_at = created_at
            db.add(message)
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
            return _serialize_message(_require_message(message.id, db))

    async def find_message_by_id(self, message_id: int) -> MessageRead | None:
        return await self._run(self._find_message_by_id, message_id)

    def _find_message_by_id(self, message_id: int) -> MessageRead | None:
        with self._session_factory() as db:
            message = _load_message(message_id, db)
            return _serialize_message(message) if message is not None else None

    async def upsert_reaction(self, message_id: int, user_id: int, emoji: str) -> MessageRead:
        return await self._run(self._upsert_reaction, message_id, user_id, emoji)

    def _upsert_reaction(self, message_id: int, user_id: int, emoji: str) -> MessageRead:
        with self._session_factory() as db:
            db.execute(
                delete(MessageReaction).where(
                    MessageReaction.message_id == message_id,
                    MessageReaction.user_id == user_id,
                    MessageReaction.emoji == emoji,
                )
            )
            db.add(MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji))
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
            return _serialize_message(_require_message(message_id, db))

    async def remove_reaction(self, message_id: int, user_id: int, emoji: str) -> bool:
        return await self._run(self._remove_reaction, message_id, user_id, emoji)

    def _remove_reaction(self, message_id: int, user_id: int, emoji: str) -> bool:
        with self._session_factory() as db:
            result = db.execute(
                delete(MessageReaction).where(
                    MessageReaction.message_id == message_id,
                    MessageReaction.user_id == user_id,
                    MessageReaction.emoji == emoji,
                )
            )
            db.commit()
            return bool(result.rowcount)

    async def edit_message(self, message_id: int, text: str) -> MessageRead:
        return await self._run(self._edit_message, message_id, text)

    def _edit_message(self, message_id: int, text: str) -> MessageRead:
        with self._session_factory() as db:
            message = _require_message(message_id, db)
            if message.content_text:
                db.add(MessageEdit(message_id=message.id, content=message.content_text))
            message.content_text = text
            message.is_edited = True
            db.commit()
            return _serialize_message(_require_message(message_id, db))

    async def soft_delete_message(self, message_id: int) -> MessageRead:
        return await self._run(self._soft_delete_message, message_id)

    def _soft_delete_message(self, message_id: int) -> MessageRead:
        with self._session_factory() as db:
            message = _require_message(message_id, db)
            message.is_deleted = True
            message.deleted_at = datetime.now(timezone.utc)
            message.content_text = DELETED_MESSAGE_TEXT
            db.commit()
            return _serialize_message(_require_message(message_id, db))
