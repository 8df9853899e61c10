"""Realtime relay components: connection registry, rooms, presence and events."""

from .emitter import Emitter, safe_emit
from .errors import AccessDenied, NotAuthenticated, NotFound, RelayError, StepOutcome, ValidationFailed
from .events import INBOUND_EVENTS, InboundEvent, OutboundEvent
from .presence import PresenceNotifier
from .registry import ConnectionEntry, ConnectionRegistry
from .relay import ConnectionSession, EventRelay, SessionState
from .rooms import RoomMembership, fan_out
from .store import ChatStore

__all__ = [
    "AccessDenied",
    "ChatStore",
    "ConnectionEntry",
    "ConnectionRegistry",
    "ConnectionSession",
    "Emitter",
    "EventRelay",
    "INBOUND_EVENTS",
    "InboundEvent",
    "NotAuthenticated",
    "NotFound",
    "OutboundEvent",
    "PresenceNotifier",
    "RelayError",
    "RoomMembership",
    "SessionState",
    "StepOutcome",
    "ValidationFailed",
    "fan_out",
    "safe_emit",
]
