"""Socket.IO transport wiring for the chat relay."""

from __future__ import annotations

import logging
from typing import Any

import socketio

from app.config import Settings
from huddle.realtime.events import InboundEvent
from huddle.realtime.relay import EventRelay

logger = logging.getLogger(__name__)


def build_socket_server(settings: Settings) -> socketio.AsyncServer:
    """Create the ASGI Socket.IO server configured from *settings*."""

    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=settings.cors_origin_list,
        ping_interval=settings.socketio_ping_interval_seconds,
        ping_timeout=settings.socketio_ping_timeout_seconds,
        logger=False,
        engineio_logger=False,
    )


class SocketIOEmitter:
    """Deliver relay events through a Socket.IO server."""

    def __init__(self, server: socketio.AsyncServer) -> None:
        self._server = server

    async def emit(self, event: str, payload: dict[str, Any], to: str) -> None:
        await self._server.emit(event, payload, to=to)


def _event_handler(relay: EventRelay, event: InboundEvent):
    async def handler(sid: str, data: Any = None, *args: Any) -> None:
        await relay.dispatch(sid, event, data)

    handler.__name__ = f"on_{event.name.lower()}"
    return handler


def register_relay_handlers(server: socketio.AsyncServer, relay: EventRelay) -> None:
    """Route connection lifecycle and every inbound event to *relay*."""

    async def connect(sid: str, environ: dict[str, Any], auth: Any = None) -> None:
        await relay.connect(sid)

    async def disconnect(sid: str, *args: Any) -> None:
        await relay.disconnect(sid)

    server.on("connect", handler=connect)
    server.on("disconnect", handler=disconnect)
    for event in InboundEvent:
        server.on(event.value, handler=_event_handler(relay, event))
    logger.debug("Registered %d relay event handlers", len(InboundEvent))
