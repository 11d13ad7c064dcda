"""Connection-scoped dispatch of relay events.

``RelayHub`` wires the process-wide components together. Each accepted
WebSocket gets a ``ConnectionDispatcher`` which owns the connection state
machine (unauthenticated -> authenticated -> closed), resolves the acting
identity, runs the matching graph/store/relay operation and fans the result
out to the identities it affects.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from rivift.realtime import Connection, KeyedLock, NotificationFanout, PresenceRegistry
from rivift.signaling import SIGNAL_EVENTS, SignalingRelay

from app.config import Settings
from app.monitoring.metrics import realtime_events_total, store_failures_total
from app.schemas import (
    DeleteMessageEvent,
    LoginEvent,
    PeerEvent,
    PrivateMessageEvent,
    ProfileUpdateEvent,
    RelayEvent,
    SignalEvent,
)
from app.services.conversations import ConversationStore, MessageIdConflict
from app.services.identity import conversation_key
from app.services.profiles import ProfileStore
from app.services.relationships import RelationshipGraph

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class RejectedEvent(Exception):
    """Malformed or unauthorised input; reported to the sender, nothing applied."""


class RelayHub:
    """Process-wide relay components, created and torn down by the application."""

    def __init__(self, session_factory: sessionmaker[Session], settings: Settings) -> None:
        self.settings = settings
        self.locks = KeyedLock()
        self.presence = PresenceRegistry()
        self.fanout = NotificationFanout(self.presence)
        self.signaling = SignalingRelay(self.presence)
        self.profiles = ProfileStore(session_factory, self.locks)
        self.graph = RelationshipGraph(session_factory, self.locks)
        self.conversations = ConversationStore(
            session_factory,
            self.locks,
            history_default_limit=settings.chat_history_default_limit,
            history_max_limit=settings.chat_history_max_limit,
        )

    def dispatcher(self, connection: Connection) -> "ConnectionDispatcher":
        return ConnectionDispatcher(self, connection)

    async def notify_profile_changed(self, identity: str) -> None:
        friends = await self.graph.friends(identity)
        await self.fanout.notify(
            {identity, *friends},
            {"type": "state_changed", "event": "update_profile", "from": identity},
        )

    async def shutdown(self) -> None:
        await self.presence.clear()
        logger.info("Relay hub stopped")


Handler = Callable[["ConnectionDispatcher", Dict[str, Any]], Awaitable[None]]


class ConnectionDispatcher:
    def __init__(self, hub: RelayHub, connection: Connection) -> None:
        self.hub = hub
        self.connection = connection
        self.identity: str | None = None
        self.state = ConnectionState.UNAUTHENTICATED

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle(self, payload: Any) -> None:
        """Process one decoded frame from the socket."""

        if self.state == ConnectionState.CLOSED:
            return
        if not isinstance(payload, dict):
            await self._send_error("Message payload must be a JSON object")
            return
        event_type = payload.get("type")
        if event_type == "ping":
            await self.connection.send_json({"type": "pong"})
            return
        if event_type == "pong":
            return
        handler = self._handler_for(event_type)
        if handler is None:
            await self._send_error("Unknown event type", event=event_type)
            return
        if event_type != "login" and self.state != ConnectionState.AUTHENTICATED:
            await self._send_error("Login required", event=event_type)
            return

        realtime_events_total.labels("relay", "in", event_type).inc()
        try:
            await handler(self, payload)
        except ValidationError as exc:
            await self._send_error("Invalid payload", event=event_type, errors=_error_summary(exc))
        except RejectedEvent as exc:
            await self._send_error(str(exc), event=event_type)
        except SQLAlchemyError:
            logger.exception("Storage failure while handling %s for %s", event_type, self.identity)
            store_failures_total.labels(event_type).inc()
            await self._send_error("Storage unavailable", event=event_type)

    async def close(self) -> None:
        """Release presence for this connection (fenced against newer logins)."""

        if self.state == ConnectionState.CLOSED:
            return
        identity = self.identity
        self.state = ConnectionState.CLOSED
        if identity is not None:
            await self._go_offline(identity)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _send_error(self, detail: str, **extra: Any) -> None:
        payload: Dict[str, Any] = {"type": "error", "detail": detail}
        payload.update({key: value for key, value in extra.items() if value is not None})
        await self.connection.send_json(payload)

    def _actor(self, event: RelayEvent) -> str:
        """Resolve the identity acting on behalf of this connection."""

        if self.identity is None:
            raise RejectedEvent("Login required")
        declared = event.sender
        if self.hub.settings.trust_declared_sender:
            return declared or self.identity
        if declared is not None and declared != self.identity:
            raise RejectedEvent("Sender does not match the logged in identity")
        return self.identity

    async def _go_offline(self, identity: str) -> None:
        if not await self.hub.presence.set_offline(identity, self.connection):
            return
        try:
            friends = await self.hub.graph.friends(identity)
        except SQLAlchemyError:
            logger.exception("Could not load friends of %s for offline notice", identity)
            return
        await self.hub.fanout.notify(
            friends, {"type": "presence_changed", "identity": identity, "online": False}
        )

    async def _state_changed(self, event: str, actor: str, other: str) -> None:
        await self.hub.fanout.notify(
            {actor, other}, {"type": "state_changed", "event": event, "from": actor, "to": other}
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def on_login(self, payload: Dict[str, Any]) -> None:
        event = LoginEvent.model_validate(payload)
        profile = await self.hub.profiles.get_user(event.identity)
        if profile is None:
            raise RejectedEvent("Unknown identity")

        if self.identity is not None and self.identity != event.identity:
            await self._go_offline(self.identity)
        self.identity = event.identity
        self.state = ConnectionState.AUTHENTICATED
        await self.hub.presence.set_online(event.identity, self.connection)

        friends = await self.hub.graph.friends(event.identity)
        online_friends = await self.hub.presence.online_among(friends)
        await self.connection.send_json(
            {
                "type": "login_ok",
                "identity": event.identity,
                "online_friends": sorted(online_friends),
            }
        )
        await self.hub.fanout.notify(
            online_friends, {"type": "presence_changed", "identity": event.identity, "online": True}
        )
        logger.info("%s logged in on %s", event.identity, self.connection.id)

    async def on_send_friend_request(self, payload: Dict[str, Any]) -> None:
        event = PeerEvent.model_validate(payload)
        actor = self._actor(event)
        if await self.hub.graph.send_request(actor, event.to):
            await self._state_changed("send_friend_request", actor, event.to)

    async def on_accept_friend_request(self, payload: Dict[str, Any]) -> None:
        event = PeerEvent.model_validate(payload)
        actor = self._actor(event)
        if await self.hub.graph.accept_request(actor, event.to):
            await self._state_changed("accept_friend_request", actor, event.to)

    async def on_reject_friend_request(self, payload: Dict[str, Any]) -> None:
        event = PeerEvent.model_validate(payload)
        actor = self._actor(event)
        if await self.hub.graph.reject_request(actor, event.to):
            await self._state_changed("reject_friend_request", actor, event.to)

    async def on_cancel_friend_request(self, payload: Dict[str, Any]) -> None:
        event = PeerEvent.model_validate(payload)
        actor = self._actor(event)
        if await self.hub.graph.cancel_request(actor, event.to):
            await self._state_changed("cancel_friend_request", actor, event.to)

    async def on_delete_friend(self, payload: Dict[str, Any]) -> None:
        event = PeerEvent.model_validate(payload)
        actor = self._actor(event)
        unfriended = await self.hub.graph.delete_friend(actor, event.to)
        # Runs even when the edge is already gone so a retry completes a
        # delete whose conversation step failed earlier.
        dropped = await self.hub.conversations.delete_conversation(actor, event.to)
        if unfriended or dropped:
            await self._state_changed("delete_friend", actor, event.to)

    async def on_private_message(self, payload: Dict[str, Any]) -> None:
        event = PrivateMessageEvent.model_validate(payload)
        actor = self._actor(event)
        try:
            stored = await self.hub.conversations.append(
                actor,
                event.to,
                event.body,
                message_id=event.id,
                client_timestamp=event.timestamp,
            )
        except MessageIdConflict:
            raise RejectedEvent("Message id already used in this conversation") from None
        message = stored.model_dump(mode="json", by_alias=True)
        await self.connection.send_json({"type": "message_sent", "message": message})
        await self.hub.fanout.notify([event.to], {"type": "message_received", "message": message})

    async def on_read_receipt(self, payload: Dict[str, Any]) -> None:
        event = PeerEvent.model_validate(payload)
        reader = self._actor(event)
        if await self.hub.conversations.mark_read(reader, event.to):
            await self.hub.fanout.notify(
                [event.to],
                {
                    "type": "messages_marked_as_read",
                    "by": reader,
                    "conversation": conversation_key(reader, event.to),
                },
            )

    async def on_delete_message(self, payload: Dict[str, Any]) -> None:
        event = DeleteMessageEvent.model_validate(payload)
        actor = self._actor(event)
        key = conversation_key(actor, event.to)
        if await self.hub.conversations.soft_delete_message(key, event.id, actor):
            await self.hub.fanout.notify(
                {actor, event.to},
                {"type": "message_deleted", "id": event.id, "conversation": key},
            )

    async def on_delete_chat(self, payload: Dict[str, Any]) -> None:
        event = PeerEvent.model_validate(payload)
        actor = self._actor(event)
        if await self.hub.conversations.delete_conversation(actor, event.to):
            await self.hub.fanout.notify(
                {actor, event.to},
                {"type": "chat_deleted", "conversation": conversation_key(actor, event.to), "by": actor},
            )

    async def on_update_profile(self, payload: Dict[str, Any]) -> None:
        event = ProfileUpdateEvent.model_validate(payload)
        actor = self._actor(event)
        if await self.hub.profiles.update_profile(actor, event.changes()):
            await self.hub.notify_profile_changed(actor)

    async def on_signal(self, payload: Dict[str, Any]) -> None:
        event = SignalEvent.model_validate(payload)
        actor = self._actor(event)
        await self.hub.signaling.relay(actor, event.to, payload["type"], event.relay_payload())

    _HANDLERS: Dict[str, Handler] = {
        "login": on_login,
        "send_friend_request": on_send_friend_request,
        "accept_friend_request": on_accept_friend_request,
        "reject_friend_request": on_reject_friend_request,
        "cancel_friend_request": on_cancel_friend_request,
        "delete_friend": on_delete_friend,
        "private_message": on_private_message,
        "read_receipt": on_read_receipt,
        "delete_message": on_delete_message,
        "delete_chat": on_delete_chat,
        "update_profile": on_update_profile,
    }

    def _handler_for(self, event_type: Any) -> Handler | None:
        if not isinstance(event_type, str):
            return None
        if event_type in SIGNAL_EVENTS:
            return ConnectionDispatcher.on_signal
        return self._HANDLERS.get(event_type)


def _error_summary(exc: ValidationError) -> list[str]:
    summary = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        summary.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return summary
