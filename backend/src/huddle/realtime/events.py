"""Socket event catalogue.

Inbound events form a closed set: every member of :class:`InboundEvent` has a
payload model and handling rules in :data:`INBOUND_EVENTS`, and the relay
refuses to start unless it has a handler for each of them. Event names on the
wire come from the enum values, never from string literals scattered across
handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.models.enums import ContentType
from app.schemas.messages import FileMeta

from .errors import ValidationFailed


class InboundEvent(str, Enum):
    """Events emitted by clients."""

    AUTHENTICATE = "authenticate"
    JOIN_CHAT = "join-chat"
    LEAVE_CHAT = "leave-chat"
    SEND_MESSAGE = "send-message"
    TYPING_START = "typing-start"
    TYPING_STOP = "typing-stop"
    ADD_REACTION = "add-reaction"
    REMOVE_REACTION = "remove-reaction"
    EDIT_MESSAGE = "edit-message"
    DELETE_MESSAGE = "delete-message"
    MARK_READ = "mark-read"


class OutboundEvent(str, Enum):
    """Events emitted by the server."""

    AUTHENTICATED = "authenticated"
    JOINED_CHAT = "joined-chat"
    LEFT_CHAT = "left-chat"
    ERROR = "error"
    NEW_MESSAGE = "new-message"
    MESSAGE_EDITED = "message-edited"
    MESSAGE_DELETED = "message-deleted"
    USER_TYPING = "user-typing"
    USER_STOPPED_TYPING = "user-stopped-typing"
    REACTION_ADDED = "reaction-added"
    REACTION_REMOVED = "reaction-removed"
    MESSAGES_READ = "messages-read"
    FRIEND_STATUS_CHANGE = "friend-status-change"


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AuthenticatePayload(_Payload):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", coerce_numbers_to_str=True
    )

    user_id: str = Field(..., min_length=1, max_length=128)

    @field_validator("user_id", mode="before")
    @classmethod
    def strip_identifier(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class ChatPayload(_Payload):
    chat_id: int


class MessageContent(_Payload):
    text: str = ""
    type: ContentType = ContentType.TEXT
    file: FileMeta | None = None


class SendMessagePayload(_Payload):
    chat_id: int
    content: MessageContent
    reply_to: int | None = None


class ReactionPayload(_Payload):
    message_id: int
    emoji: str = Field(..., min_length=1)

    @field_validator("emoji", mode="before")
    @classmethod
    def strip_emoji(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class EditMessagePayload(_Payload):
    message_id: int
    text: str


class MessageRefPayload(_Payload):
    message_id: int


@dataclass(frozen=True, slots=True)
class EventSpec:
    """Handling rules for one inbound event."""

    payload: type[_Payload]
    requires_auth: bool = True
    failure_message: str = "Request failed"
    invalid_message: str = "Invalid payload"
    silent: bool = False


INBOUND_EVENTS: dict[InboundEvent, EventSpec] = {
    InboundEvent.AUTHENTICATE: EventSpec(
        AuthenticatePayload,
        requires_auth=False,
        failure_message="Authentication failed",
        invalid_message="User ID is required",
    ),
    InboundEvent.JOIN_CHAT: EventSpec(ChatPayload, failure_message="Failed to join chat"),
    InboundEvent.LEAVE_CHAT: EventSpec(ChatPayload, failure_message="Failed to leave chat"),
    InboundEvent.SEND_MESSAGE: EventSpec(SendMessagePayload, failure_message="Failed to send message"),
    InboundEvent.TYPING_START: EventSpec(ChatPayload, failure_message="Failed to update typing status"),
    InboundEvent.TYPING_STOP: EventSpec(ChatPayload, failure_message="Failed to update typing status"),
    InboundEvent.ADD_REACTION: EventSpec(ReactionPayload, failure_message="Failed to add reaction"),
    InboundEvent.REMOVE_REACTION: EventSpec(ReactionPayload, failure_message="Failed to remove reaction"),
    InboundEvent.EDIT_MESSAGE: EventSpec(EditMessagePayload, failure_message="Failed to edit message"),
    InboundEvent.DELETE_MESSAGE: EventSpec(MessageRefPayload, failure_message="Failed to delete message"),
    InboundEvent.MARK_READ: EventSpec(ChatPayload, silent=True),
}


def parse_payload(event: InboundEvent, data: Any) -> _Payload:
    """Validate raw socket data for *event* or raise :class:`ValidationFailed`."""

    spec = INBOUND_EVENTS[event]
    if not isinstance(data, dict):
        raise ValidationFailed(spec.invalid_message)
    try:
        return spec.payload.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailed(spec.invalid_message) from exc


def error_payload(message: str) -> dict[str, str]:
    return {"message": message}
