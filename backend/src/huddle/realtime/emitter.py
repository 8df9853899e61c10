"""Delivery of server events to individual connections."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from app.monitoring.metrics import relay_events_total

from .events import OutboundEvent

logger = logging.getLogger(__name__)


class Emitter(Protocol):
    """Sends one event to one connection."""

    async def emit(self, event: str, payload: dict[str, Any], to: str) -> None:
        ...


async def safe_emit(
    emitter: Emitter, sid: str, event: OutboundEvent, payload: dict[str, Any]
) -> bool:
    """Send *event* to *sid*, swallowing transport errors from closed connections.

    Returns True if the event was handed to the transport, False otherwise.
    """
    try:
        await emitter.emit(event.value, payload, to=sid)
    except (ConnectionError, RuntimeError) as exc:
        logger.debug("Failed to emit %s to %s: %s", event.value, sid, exc)
        return False
    relay_events_total.labels(event.value, "out").inc()
    return True
