from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from huddle.realtime import InboundEvent


@pytest.fixture()
def asgi_app(settings, session_factory):
    return create_app(settings, session_factory=session_factory)


@pytest.fixture()
def api(asgi_app):
    return asgi_app.other_asgi_app


def test_health_endpoint(asgi_app) -> None:
    client = TestClient(asgi_app)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "environment": "development"}


def test_metrics_endpoint_lists_relay_metrics(asgi_app) -> None:
    client = TestClient(asgi_app)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    body = response.text
    assert "# TYPE relay_events_total counter" in body
    assert "# TYPE relay_active_connections gauge" in body


def test_every_inbound_event_has_a_socket_handler(api) -> None:
    handlers = api.state.socket_server.handlers["/"]

    assert {"connect", "disconnect"} <= set(handlers)
    for event in InboundEvent:
        assert event.value in handlers


@pytest.mark.anyio("asyncio")
async def test_socket_handlers_drive_the_relay(api, seed, monkeypatch) -> None:
    server = api.state.socket_server
    relay = api.state.relay
    sent: list[tuple[str, Any, str]] = []

    async def record_emit(event, data=None, to=None, **kwargs):
        sent.append((event, data, to))

    monkeypatch.setattr(server, "emit", record_emit)
    handlers = server.handlers["/"]

    await handlers["connect"]("sid-1", {}, None)
    await handlers["authenticate"]("sid-1", {"userId": "ext-alice"})

    assert sent == [("authenticated", {"userId": seed.alice, "message": "Successfully authenticated"}, "sid-1")]
    assert relay.registry.lookup(seed.alice).sid == "sid-1"

    await handlers["disconnect"]("sid-1", "client disconnect")

    assert relay.session("sid-1") is None
    assert relay.registry.lookup(seed.alice) is None
