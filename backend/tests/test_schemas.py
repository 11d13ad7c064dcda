"""Unit tests validating Pydantic schema constraints."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.schemas import (
    DirectMessageRead,
    PeerEvent,
    PrivateMessageEvent,
    ProfileUpdateEvent,
    SignalEvent,
    UserCreate,
    UserProfileUpdate,
)


def test_user_create_normalises_identity():
    user = UserCreate(email="  Alice@Example.COM ", display_name="  Alice  ")
    assert user.email == "alice@example.com"
    assert user.display_name == "Alice"


def test_user_create_requires_identity():
    with pytest.raises(ValidationError):
        UserCreate(email="   ")


def test_identity_rejects_conversation_key_separator():
    with pytest.raises(ValidationError):
        UserCreate(email="a@x:b@y")
    with pytest.raises(ValidationError):
        PeerEvent.model_validate({"to": "b@y:c@z"})


def test_profile_update_requires_a_field():
    with pytest.raises(ValidationError):
        UserProfileUpdate()
    assert UserProfileUpdate(icon=None).changes() == {"icon": None}


def test_peer_event_reads_declared_sender_alias():
    event = PeerEvent.model_validate({"type": "delete_chat", "from": "Bob@Example.com", "to": "alice@example.com"})
    assert event.sender == "bob@example.com"
    assert PeerEvent.model_validate({"to": "alice@example.com"}).sender is None


def test_private_message_requires_body():
    with pytest.raises(ValidationError):
        PrivateMessageEvent.model_validate({"to": "bob@example.com", "body": ""})


def test_profile_update_event_ignores_routing_fields():
    event = ProfileUpdateEvent.model_validate({"type": "update_profile", "icon": "data:image/png;base64,AA=="})
    assert event.changes() == {"icon": "data:image/png;base64,AA=="}
    with pytest.raises(ValidationError):
        ProfileUpdateEvent.model_validate({"type": "update_profile"})


def test_signal_event_keeps_unknown_fields():
    event = SignalEvent.model_validate(
        {"type": "webrtc_answer", "to": "bob@example.com", "description": {"type": "answer", "sdp": "v=0"}}
    )
    assert event.relay_payload() == {
        "type": "webrtc_answer",
        "description": {"type": "answer", "sdp": "v=0"},
    }


def test_direct_message_serialises_routing_aliases():
    message = DirectMessageRead(
        id="m-1",
        conversation="alice@example.com:bob@example.com",
        position=0,
        sender="alice@example.com",
        recipient="bob@example.com",
        body="cipher",
        timestamp="2026-10-19T12:00:00Z",
    )
    payload = message.model_dump(mode="json", by_alias=True)
    assert payload["from"] == "alice@example.com"
    assert payload["to"] == "bob@example.com"
    assert payload["kind"] == "normal"
