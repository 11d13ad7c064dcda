"""Application service helpers."""

from .conversations import ConversationStore
from .dispatcher import ConnectionDispatcher, ConnectionState, RelayHub
from .profiles import DuplicateIdentity, ProfileStore
from .relationships import RelationshipGraph, RelationshipSnapshot

__all__ = [
    "ConnectionDispatcher",
    "ConnectionState",
    "ConversationStore",
    "DuplicateIdentity",
    "ProfileStore",
    "RelationshipGraph",
    "RelationshipSnapshot",
    "RelayHub",
]
