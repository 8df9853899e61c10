"""Schemas related to chat messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.enums import ContentType
from app.schemas.users import UserPublic

_CAMEL = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class FileMeta(BaseModel):
    """Attachment metadata carried by image and file messages."""

    model_config = _CAMEL

    url: str = Field(..., min_length=1, max_length=1024)
    name: str | None = Field(default=None, max_length=255)
    size: int | None = Field(default=None, ge=0)
    mime_type: str | None = Field(default=None, max_length=128)


class ReactionRead(BaseModel):
    model_config = _CAMEL

    user_id: int
    emoji: str
    created_at: datetime | None = None


class ReplySummary(BaseModel):
    """Text and sender of the message being replied to."""

    model_config = _CAMEL

    id: int
    text: str
    sender: UserPublic | None = None


class MessageRead(BaseModel):
    """Serialized representation of a chat message."""

    model_config = _CAMEL

    id: int
    chat_id: int
    sender_id: int
    sender: UserPublic | None = None
    text: str = ""
    type: ContentType = ContentType.TEXT
    file: FileMeta | None = None
    reply_to: ReplySummary | None = None
    reactions: list[ReactionRead] = []
    is_edited: bool = False
    is_deleted: bool = False
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
