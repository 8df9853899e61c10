"""Storage operations the realtime layer depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from app.models.enums import ContentType
from app.schemas import ChatSnapshot, FileMeta, MessageRead, UserSnapshot


class ChatStore(Protocol):
    """Protocol describing the persistence calls made by the relay."""

    async def find_user_by_external_id(self, external_id: str) -> UserSnapshot | None:
        """Return the user linked to an identity-provider id."""

    async def find_user_by_id(self, user_id: int) -> UserSnapshot | None:
        """Return the user with its friend ids populated."""

    async def find_friend_ids(self, user_id: int) -> list[int]:
        """Return accepted friends, excluding blocks in either direction."""

    async def find_chats_by_participant(self, user_id: int) -> list[ChatSnapshot]:
        """Return active chats the user participates in, most recent first."""

    async def find_chat_by_id(self, chat_id: int) -> ChatSnapshot | None:
        """Return a chat with its participants."""

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
        """Persist a message and return it fully populated."""

    async def record_last_message(self, chat_id: int, message_id: int, at: datetime) -> None:
        """Point the chat at its newest message and bump its activity timestamp."""

    async def find_message_by_id(self, message_id: int) -> MessageRead | None:
        """Return a populated message."""

    async def upsert_reaction(self, message_id: int, user_id: int, emoji: str) -> MessageRead:
        """Replace any (user, emoji) reaction on the message with a fresh one."""

    async def remove_reaction(self, message_id: int, user_id: int, emoji: str) -> bool:
        """Delete the (user, emoji) reaction; False if there was none."""

    async def edit_message(self, message_id: int, text: str) -> MessageRead:
        """Replace the text, keeping the previous one in the edit history."""

    async def soft_delete_message(self, message_id: int) -> MessageRead:
        """Flag the message deleted and blank its text."""

    async def update_participant_last_read(self, chat_id: int, user_id: int, at: datetime) -> bool:
        """Move the participant's read marker; False if the user is not a participant."""

    async def set_user_online_status(self, user_id: int, is_online: bool, last_seen: datetime) -> None:
        """Persist the online flag and last-seen timestamp."""

    async def unread_count(self, chat_id: int, user_id: int) -> int:
        """Count messages from others created after the participant's read marker."""
