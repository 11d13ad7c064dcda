"""Stateless relay for WebRTC and live-canvas control messages.

Call setup (offer/answer/ICE) and shared-canvas events are peer-to-peer; the
server only forwards them to the target's live connection. Nothing is kept
between events, so a target that is offline simply never sees the event.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from app.monitoring.metrics import realtime_events_total

from ..realtime.presence import PresenceRegistry


logger = logging.getLogger(__name__)

WEBRTC_EVENTS = frozenset(
    {
        "webrtc_offer",
        "webrtc_answer",
        "webrtc_ice_candidate",
        "webrtc_end",
        "webrtc_reject",
    }
)
CANVAS_EVENTS = frozenset({"canvas_invite", "canvas_draw", "canvas_clear"})
SIGNAL_EVENTS = WEBRTC_EVENTS | CANVAS_EVENTS

# Routing fields are owned by the relay and never copied from the payload.
_ROUTING_KEYS = {"type", "from", "to"}


def build_signal_envelope(kind: str, sender: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalise an outgoing signalling payload.

    SDP descriptions and ICE candidates are placed first and passed through
    untouched; every other field is forwarded verbatim except the routing keys.
    """

    body: Dict[str, Any] = {"type": kind}
    if "description" in payload:
        body["description"] = payload.get("description")
    if "candidate" in payload:
        body["candidate"] = payload.get("candidate")
    for key, value in payload.items():
        if key in _ROUTING_KEYS or key in {"description", "candidate"}:
            continue
        body[key] = value
    body["from"] = sender
    return body


class SignalingRelay:
    """Forward control events to the target identity's live connection."""

    def __init__(self, presence: PresenceRegistry) -> None:
        self._presence = presence

    async def relay(
        self, sender: str, target: str, kind: str, payload: Mapping[str, Any]
    ) -> bool:
        if kind not in SIGNAL_EVENTS:
            raise ValueError(f"Unsupported signalling event '{kind}'")
        connection = await self._presence.get_connection(target)
        if connection is None:
            realtime_events_total.labels("signal", "dropped", kind).inc()
            logger.debug("Dropping %s from %s: %s is offline", kind, sender, target)
            return False
        delivered = await connection.send_json(build_signal_envelope(kind, sender, payload))
        realtime_events_total.labels("signal", "out" if delivered else "dropped", kind).inc()
        return delivered
