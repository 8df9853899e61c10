from __future__ import annotations

from enum import Enum


class ChatType(str, Enum):
    """Kinds of conversations."""

    DIRECT = "direct"
    GROUP = "group"


class ParticipantRole(str, Enum):
    """Roles a user can hold inside a chat."""

    ADMIN = "admin"
    MEMBER = "member"


class ContentType(str, Enum):
    """Payload kinds a message can carry."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class FriendRequestStatus(str, Enum):
    """Lifecycle states for friend relationships."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
