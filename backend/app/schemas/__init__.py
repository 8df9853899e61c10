"""Pydantic schemas shared by the store and the realtime relay."""

from .chats import ChatSnapshot, ParticipantRead
from .messages import FileMeta, MessageRead, ReactionRead, ReplySummary
from .users import UserPublic, UserSnapshot

__all__ = [
    "ChatSnapshot",
    "ParticipantRead",
    "FileMeta",
    "MessageRead",
    "ReactionRead",
    "ReplySummary",
    "UserPublic",
    "UserSnapshot",
]
