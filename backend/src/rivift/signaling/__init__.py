"""Peer-to-peer call and canvas signalling."""

from .relay import (
    CANVAS_EVENTS,
    SIGNAL_EVENTS,
    WEBRTC_EVENTS,
    SignalingRelay,
    build_signal_envelope,
)

__all__ = [
    "CANVAS_EVENTS",
    "SIGNAL_EVENTS",
    "WEBRTC_EVENTS",
    "SignalingRelay",
    "build_signal_envelope",
]
