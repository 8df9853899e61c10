"""Metric definitions for the realtime relay."""

from __future__ import annotations

from .registry import registry


relay_events_total = registry.counter(
    "relay_events_total",
    "Count of socket events handled (in) and emitted (out) by the relay.",
    label_names=("event", "direction"),
)

relay_errors_total = registry.counter(
    "relay_errors_total",
    "Count of error events returned to clients, by failure kind.",
    label_names=("event", "kind"),
)

relay_soft_failures_total = registry.counter(
    "relay_soft_failures_total",
    "Best-effort steps (room sync, presence fan-out) that failed and were skipped.",
    label_names=("step",),
)

relay_connections = registry.gauge(
    "relay_active_connections",
    "Number of Socket.IO connections currently attached to this process.",
)

relay_registered_users = registry.gauge(
    "relay_registered_users",
    "Number of users with an entry in the connection registry.",
)

relay_room_subscriptions = registry.gauge(
    "relay_room_subscriptions",
    "Number of (chat, connection) room subscriptions held in memory.",
)
