"""Database models package."""

from .base import Base
from .chat import (
    DELETED_MESSAGE_BODY,
    Conversation,
    DirectMessage,
    FriendLink,
    User,
)
from .enums import FriendRequestStatus, MessageKind, RelationState

__all__ = [
    "Base",
    "User",
    "FriendLink",
    "Conversation",
    "DirectMessage",
    "DELETED_MESSAGE_BODY",
    "FriendRequestStatus",
    "MessageKind",
    "RelationState",
]
