"""Pydantic schemas for API payloads and relay socket events."""

from .events import (
    DeleteMessageEvent,
    LoginEvent,
    PeerEvent,
    PrivateMessageEvent,
    ProfileUpdateEvent,
    RelayEvent,
    SignalEvent,
)
from .messages import DirectMessageRead
from .users import (
    FriendEntry,
    PublicUser,
    SyncSnapshot,
    UserCreate,
    UserLookup,
    UserProfileUpdate,
    UserRead,
)

__all__ = [
    "DeleteMessageEvent",
    "DirectMessageRead",
    "FriendEntry",
    "LoginEvent",
    "PeerEvent",
    "PrivateMessageEvent",
    "ProfileUpdateEvent",
    "PublicUser",
    "RelayEvent",
    "SignalEvent",
    "SyncSnapshot",
    "UserCreate",
    "UserLookup",
    "UserProfileUpdate",
    "UserRead",
]
