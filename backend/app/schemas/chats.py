"""Schemas describing chats and their participants."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.models.enums import ChatType, ParticipantRole


class ParticipantRead(BaseModel):
    """Participant entry of a chat."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    user_id: int
    role: ParticipantRole = ParticipantRole.MEMBER
    joined_at: datetime | None = None
    last_read: datetime | None = None


class ChatSnapshot(BaseModel):
    """Chat state needed for authorisation and room bookkeeping."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    type: ChatType
    name: str | None = None
    participants: list[ParticipantRead] = []
    last_message_id: int | None = None
    last_activity: datetime | None = None
    is_active: bool = True

    def participant(self, user_id: int) -> ParticipantRead | None:
        return next((entry for entry in self.participants if entry.user_id == user_id), None)

    def has_participant(self, user_id: int) -> bool:
        return self.participant(user_id) is not None

    def is_admin(self, user_id: int) -> bool:
        entry = self.participant(user_id)
        return entry is not None and entry.role == ParticipantRole.ADMIN
