from __future__ import annotations

from enum import Enum


class FriendRequestStatus(str, Enum):
    """Lifecycle states for a friend link row."""

    PENDING = "pending"
    ACCEPTED = "accepted"


class MessageKind(str, Enum):
    """Whether a stored message still carries its body or is a tombstone."""

    NORMAL = "normal"
    DELETED = "deleted"


class RelationState(str, Enum):
    """Relationship between two identities, seen from the first one."""

    NONE = "none"
    OUTGOING = "outgoing"
    INCOMING = "incoming"
    FRIENDS = "friends"
