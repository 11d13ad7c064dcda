"""WebSocket endpoint for the relay."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from rivift.realtime import Connection

from app.config import Settings
from app.monitoring.metrics import realtime_connections
from app.services.dispatcher import RelayHub

router = APIRouter(tags=["ws"])

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def iter_keepalive_messages(
    connection: Connection,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if connection.websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if should_ping:
                if not await connection.send_json(ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


@router.websocket("/ws")
async def websocket_relay(websocket: WebSocket) -> None:
    """Relay socket: login, friendship, messaging and signalling events."""

    hub: RelayHub = websocket.app.state.hub
    settings: Settings = websocket.app.state.settings

    await websocket.accept()
    connection = Connection(websocket)
    dispatcher = hub.dispatcher(connection)
    realtime_connections.labels("relay").inc()
    logger.debug("Relay connection %s opened", connection.id)

    try:
        async for raw_message in iter_keepalive_messages(
            connection,
            websocket.receive_text,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            if not raw_message:
                continue
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                await connection.send_json({"type": "error", "detail": "Invalid payload"})
                continue
            await dispatcher.handle(payload)
    finally:
        await dispatcher.close()
        realtime_connections.labels("relay").dec()
        logger.debug("Relay connection %s closed", connection.id)
