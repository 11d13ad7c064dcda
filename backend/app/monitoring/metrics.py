"""Metric definitions for the relay."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events handled by the relay.",
    label_names=("topic", "direction", "action"),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

presence_online = registry.gauge(
    "presence_online_identities",
    "Number of identities with a live presence entry.",
)

notifications_total = registry.counter(
    "notifications_total",
    "Fan-out notifications by event type and outcome (delivered or dropped).",
    label_names=("event", "outcome"),
)

store_failures_total = registry.counter(
    "store_failures_total",
    "Durable store errors surfaced to the triggering connection.",
    label_names=("event",),
)
