"""Inbound relay socket events.

Every frame is a JSON object with a ``type`` key. The acting identity comes
from the connection (see ``ConnectionDispatcher``); ``from`` is accepted so
that clients written against the declared-sender protocol keep working.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.schemas.users import Identity


class RelayEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sender: Identity | None = Field(default=None, alias="from")


class LoginEvent(BaseModel):
    identity: Identity


class PeerEvent(RelayEvent):
    """Event addressed to a single counterpart."""

    to: Identity


class PrivateMessageEvent(PeerEvent):
    body: str = Field(..., min_length=1, description="Opaque encrypted message body")
    id: str | None = Field(default=None, min_length=1, max_length=64)
    timestamp: datetime | None = None


class DeleteMessageEvent(PeerEvent):
    id: str = Field(..., min_length=1, max_length=64)


class ProfileUpdateEvent(RelayEvent):
    display_name: str | None = Field(default=None, min_length=1, max_length=128)
    icon: str | None = None
    public_key: str | None = None
    encrypted_private_key: str | None = None

    @model_validator(mode="after")
    def ensure_any_field(self) -> "ProfileUpdateEvent":
        if not self.changes():
            raise ValueError("At least one profile field must be provided")
        return self

    def changes(self) -> dict[str, str | None]:
        fields = {"display_name", "icon", "public_key", "encrypted_private_key"}
        return self.model_dump(include=fields & self.model_fields_set)


class SignalEvent(PeerEvent):
    """Call or canvas control message; unknown fields are relayed verbatim."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def relay_payload(self) -> dict:
        return dict(self.model_extra or {})
