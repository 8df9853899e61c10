"""Database models package."""

from .base import Base
from .chat import (
    Chat,
    ChatParticipant,
    FriendLink,
    Message,
    MessageEdit,
    MessageReaction,
    User,
    UserBlock,
)
from .enums import ChatType, ContentType, FriendRequestStatus, ParticipantRole

__all__ = [
    "Base",
    "User",
    "UserBlock",
    "FriendLink",
    "Chat",
    "ChatParticipant",
    "Message",
    "MessageEdit",
    "MessageReaction",
    "ChatType",
    "ContentType",
    "FriendRequestStatus",
    "ParticipantRole",
]
