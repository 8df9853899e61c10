import logging.config

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from app.api.metrics import router as metrics_router
from app.api.sockets import SocketIOEmitter, build_socket_server, register_relay_handlers
from app.config import Settings, get_settings
from app.database import create_db_engine, create_session_factory
from app.services import SqlChatStore
from huddle.realtime import ConnectionRegistry, EventRelay, PresenceNotifier, RoomMembership


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
    "loggers": {
        "huddle.realtime": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        }
    },
}


def configure_logging(settings: Settings) -> None:
    config = {
        **LOGGING_CONFIG,
        "root": {**LOGGING_CONFIG["root"], "level": settings.log_level},
        "loggers": {
            name: {**logger_config, "level": settings.log_level}
            for name, logger_config in LOGGING_CONFIG["loggers"].items()
        },
    }
    logging.config.dictConfig(config)


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
) -> socketio.ASGIApp:
    """Assemble the HTTP app and the Socket.IO relay into one ASGI application."""

    settings = settings or get_settings()
    configure_logging(settings)

    if session_factory is None:
        session_factory = create_session_factory(create_db_engine(settings))

    api = FastAPI(title=settings.app_name, debug=settings.debug)
    api.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @api.get("/health", tags=["system"])
    def health_check() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok", "environment": settings.environment}

    api.include_router(metrics_router)

    server = build_socket_server(settings)
    emitter = SocketIOEmitter(server)
    store = SqlChatStore(session_factory)
    registry = ConnectionRegistry()
    rooms = RoomMembership(store, emitter)
    presence = PresenceNotifier(store, registry, emitter)
    relay = EventRelay(store, registry, rooms, presence, emitter, settings=settings)
    register_relay_handlers(server, relay)

    api.state.settings = settings
    api.state.socket_server = server
    api.state.relay = relay

    return socketio.ASGIApp(server, other_asgi_app=api, socketio_path=settings.socketio_path)


app = create_app()
