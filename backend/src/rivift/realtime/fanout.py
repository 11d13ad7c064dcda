"""Push-now-else-drop notification delivery."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from app.monitoring.metrics import notifications_total

from .presence import PresenceRegistry


logger = logging.getLogger(__name__)


class NotificationFanout:
    """Deliver an event to every currently online identity of a target set.

    Offline identities are skipped without queueing or retrying; they recover
    missed state through the pull endpoints after reconnecting.
    """

    def __init__(self, presence: PresenceRegistry) -> None:
        self._presence = presence

    async def notify(self, identities: Iterable[str], event: dict[str, Any]) -> int:
        unique_recipients = set(identities)
        if not unique_recipients:
            return 0
        event_type = str(event.get("type", "unknown"))
        delivered = 0
        for identity in sorted(unique_recipients):
            connection = await self._presence.get_connection(identity)
            if connection is None:
                notifications_total.labels(event_type, "dropped").inc()
                continue
            if await connection.send_json(event):
                delivered += 1
                notifications_total.labels(event_type, "delivered").inc()
            else:
                notifications_total.labels(event_type, "dropped").inc()
        logger.debug(
            "Fanout %s delivered to %d of %d identities", event_type, delivered, len(unique_recipients)
        )
        return delivered
