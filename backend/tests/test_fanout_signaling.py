from __future__ import annotations

from typing import Any

import pytest
from fastapi.websockets import WebSocketState

from app.monitoring.metrics import notifications_total, realtime_events_total
from rivift.realtime import Connection, NotificationFanout, PresenceRegistry
from rivift.signaling import SignalingRelay, build_signal_envelope


class DummyWebSocket:
    def __init__(self) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)


@pytest.mark.anyio("asyncio")
async def test_fanout_delivers_to_online_and_drops_offline() -> None:
    presence = PresenceRegistry()
    alice_socket = DummyWebSocket()
    await presence.set_online("alice@example.com", Connection(alice_socket))
    fanout = NotificationFanout(presence)
    event = {"type": "fanout_probe", "from": "bob@example.com"}

    delivered = await fanout.notify(
        ["alice@example.com", "carol@example.com", "alice@example.com"], event
    )

    assert delivered == 1
    assert alice_socket.sent == [event]
    assert notifications_total.value("fanout_probe", "delivered") == 1
    assert notifications_total.value("fanout_probe", "dropped") == 1


@pytest.mark.anyio("asyncio")
async def test_fanout_skips_closed_socket_without_raising() -> None:
    presence = PresenceRegistry()
    socket = DummyWebSocket()
    socket.application_state = WebSocketState.DISCONNECTED
    await presence.set_online("alice@example.com", Connection(socket))

    assert await NotificationFanout(presence).notify(["alice@example.com"], {"type": "x"}) == 0
    assert await NotificationFanout(presence).notify([], {"type": "x"}) == 0


def test_signal_envelope_keeps_sdp_and_overrides_routing_fields() -> None:
    description = {"type": "offer", "sdp": "v=0\r\no=- 1 2 IN IP4 127.0.0.1\r\n"}
    envelope = build_signal_envelope(
        "webrtc_offer",
        "alice@example.com",
        {"description": description, "from": "mallory@example.com", "to": "x", "video": True},
    )

    assert envelope == {
        "type": "webrtc_offer",
        "description": description,
        "video": True,
        "from": "alice@example.com",
    }


@pytest.mark.anyio("asyncio")
async def test_relay_forwards_to_online_target_only() -> None:
    presence = PresenceRegistry()
    bob_socket = DummyWebSocket()
    await presence.set_online("bob@example.com", Connection(bob_socket))
    relay = SignalingRelay(presence)
    before = realtime_events_total.value("signal", "dropped", "canvas_draw")

    candidate = {"candidate": "candidate:1 1 udp 2122260223 10.0.0.1 54321 typ host"}
    assert await relay.relay("alice@example.com", "bob@example.com", "webrtc_ice_candidate", candidate)
    assert bob_socket.sent == [
        {
            "type": "webrtc_ice_candidate",
            "candidate": candidate["candidate"],
            "from": "alice@example.com",
        }
    ]

    assert not await relay.relay("alice@example.com", "carol@example.com", "canvas_draw", {"x": 1})
    assert realtime_events_total.value("signal", "dropped", "canvas_draw") == before + 1


@pytest.mark.anyio("asyncio")
async def test_relay_rejects_unknown_kind() -> None:
    relay = SignalingRelay(PresenceRegistry())
    with pytest.raises(ValueError):
        await relay.relay("alice@example.com", "bob@example.com", "private_message", {})
