"""Realtime building blocks: presence, fan-out and per-key locking."""

from .fanout import NotificationFanout
from .locks import KeyedLock
from .presence import Connection, PresenceRegistry

__all__ = [
    "Connection",
    "KeyedLock",
    "NotificationFanout",
    "PresenceRegistry",
]
