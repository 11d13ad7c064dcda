"""Schemas related to direct messages."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import MessageKind


class DirectMessageRead(BaseModel):
    """Serialized representation of a stored message."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation: str = Field(..., description="Canonical conversation key")
    position: int
    sender: str = Field(..., serialization_alias="from")
    recipient: str = Field(..., serialization_alias="to")
    body: str
    timestamp: datetime = Field(..., description="Store-assigned creation time")
    client_timestamp: datetime | None = None
    read: bool = False
    kind: MessageKind = MessageKind.NORMAL

