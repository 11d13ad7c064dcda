"""In-memory registry of the single live connection per identity."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, Protocol

from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import presence_online


logger = logging.getLogger(__name__)


class JSONSocket(Protocol):
    application_state: WebSocketState

    async def send_json(self, data: Any) -> None: ...


class Connection:
    """Handle for one accepted WebSocket.

    Handles compare by identity, which is what fences a stale disconnect from
    evicting a newer login for the same identity.
    """

    __slots__ = ("id", "websocket")

    def __init__(self, websocket: JSONSocket, connection_id: str | None = None) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.websocket = websocket

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r})"

    async def send_json(self, data: dict[str, Any]) -> bool:
        """Send *data*, returning ``False`` instead of raising on a dead socket."""

        if self.websocket.application_state != WebSocketState.CONNECTED:
            return False
        try:
            await self.websocket.send_json(data)
            return True
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug("Failed to send websocket message on %s: %s", self.id, e)
            return False


class PresenceRegistry:
    """Maps each online identity to exactly one connection.

    Last login wins: ``set_online`` replaces any previous entry. Nothing is
    persisted, so after a restart every identity is offline until it logs in.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def set_online(self, identity: str, connection: Connection) -> Connection | None:
        async with self._lock:
            previous = self._entries.get(identity)
            self._entries[identity] = connection
            presence_online.set(len(self._entries))
        if previous is not None and previous is not connection:
            logger.info("Login for %s on %s supersedes %s", identity, connection.id, previous.id)
            return previous
        return None

    async def set_offline(self, identity: str, connection: Connection) -> bool:
        async with self._lock:
            current = self._entries.get(identity)
            if current is not connection:
                return False
            self._entries.pop(identity, None)
            presence_online.set(len(self._entries))
            return True

    async def get_connection(self, identity: str) -> Connection | None:
        async with self._lock:
            return self._entries.get(identity)

    async def is_online(self, identity: str) -> bool:
        return await self.get_connection(identity) is not None

    async def online_among(self, identities: Iterable[str]) -> set[str]:
        async with self._lock:
            return {identity for identity in identities if identity in self._entries}

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            presence_online.set(0)
