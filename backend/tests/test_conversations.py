from __future__ import annotations

import asyncio

import pytest

from app.models import DELETED_MESSAGE_BODY, Conversation, DirectMessage, MessageKind
from app.services import ConversationStore
from app.services.conversations import MessageIdConflict
from app.services.identity import InvalidIdentity, conversation_key

ALICE = "alice@example.com"
BOB = "bob@example.com"


@pytest.fixture()
def store(session_factory, make_users) -> ConversationStore:
    make_users(ALICE, BOB)
    return ConversationStore(session_factory, history_default_limit=3, history_max_limit=5)


@pytest.mark.anyio("asyncio")
async def test_append_assigns_consecutive_positions_under_one_key(store) -> None:
    first = await store.append(ALICE, BOB, "cipher-1")
    second = await store.append(BOB, ALICE, "cipher-2")

    assert first.conversation == second.conversation == conversation_key(BOB, ALICE)
    assert (first.position, second.position) == (0, 1)
    assert first.read is False
    assert first.kind == MessageKind.NORMAL


@pytest.mark.anyio("asyncio")
async def test_append_with_known_id_is_idempotent(store, session_factory) -> None:
    first = await store.append(ALICE, BOB, "cipher", message_id="m-1")
    retry = await store.append(ALICE, BOB, "cipher", message_id="m-1")

    assert retry.position == first.position
    with session_factory() as session:
        assert session.query(DirectMessage).count() == 1


@pytest.mark.anyio("asyncio")
async def test_mark_read_only_touches_messages_to_the_reader(store) -> None:
    await store.append(ALICE, BOB, "to-bob-1")
    await store.append(ALICE, BOB, "to-bob-2")
    await store.append(BOB, ALICE, "to-alice")

    assert await store.mark_read(BOB, ALICE) == 2
    assert await store.mark_read(BOB, ALICE) == 0

    messages = await store.history(ALICE, BOB)
    assert [(m.body, m.read) for m in messages] == [
        ("to-bob-1", True),
        ("to-bob-2", True),
        ("to-alice", False),
    ]
    assert await store.unread_count(ALICE, BOB) == 1
    assert await store.unread_counts(ALICE) == {BOB: 1}
    assert await store.unread_counts(BOB) == {}


@pytest.mark.anyio("asyncio")
async def test_soft_delete_requires_the_sender(store) -> None:
    message = await store.append(ALICE, BOB, "secret", message_id="m-1")
    key = message.conversation

    assert not await store.soft_delete_message(key, "m-1", BOB)
    assert not await store.soft_delete_message(key, "missing", ALICE)
    assert await store.soft_delete_message(key, "m-1", ALICE)
    assert not await store.soft_delete_message(key, "m-1", ALICE)

    [stored] = await store.history(ALICE, BOB)
    assert stored.body == DELETED_MESSAGE_BODY
    assert stored.kind == MessageKind.DELETED
    assert stored.position == message.position


@pytest.mark.anyio("asyncio")
async def test_history_pages_from_the_newest_message(store) -> None:
    for index in range(7):
        await store.append(ALICE, BOB, f"m{index}")

    newest = await store.history(ALICE, BOB)
    assert [m.body for m in newest] == ["m4", "m5", "m6"]

    descending = await store.history(BOB, ALICE, order="desc")
    assert descending == list(reversed(newest))

    older = await store.history(ALICE, BOB, limit=2, offset=3)
    assert [m.body for m in older] == ["m2", "m3"]

    capped = await store.history(ALICE, BOB, limit=100)
    assert len(capped) == 5

    with pytest.raises(ValueError):
        await store.history(ALICE, BOB, order="sideways")


@pytest.mark.anyio("asyncio")
async def test_delete_conversation_removes_everything(store, session_factory) -> None:
    await store.append(ALICE, BOB, "one")
    await store.append(BOB, ALICE, "two")

    assert await store.delete_conversation(BOB, ALICE)
    assert await store.history(ALICE, BOB) == []
    assert not await store.delete_conversation(ALICE, BOB)
    with session_factory() as session:
        assert session.query(Conversation).count() == 0
        assert session.query(DirectMessage).count() == 0

    # Positions restart for a fresh conversation.
    again = await store.append(ALICE, BOB, "three")
    assert again.position == 0


@pytest.mark.anyio("asyncio")
async def test_reused_id_from_the_other_party_is_refused(store) -> None:
    await store.append(ALICE, BOB, "from alice", message_id="1")

    with pytest.raises(MessageIdConflict):
        await store.append(BOB, ALICE, "from bob", message_id="1")

    [stored] = await store.history(ALICE, BOB)
    assert (stored.sender, stored.body) == (ALICE, "from alice")

    reply = await store.append(BOB, ALICE, "from bob", message_id="2")
    assert (reply.sender, reply.position) == (BOB, 1)


@pytest.mark.anyio("asyncio")
async def test_identities_with_separator_cannot_share_a_key(store, session_factory) -> None:
    with pytest.raises(InvalidIdentity):
        conversation_key("a@x", "b@y:c@z")
    with pytest.raises(InvalidIdentity):
        conversation_key("a@x:b@y", "c@z")

    with pytest.raises(InvalidIdentity):
        await store.append("a@x", "b@y:c@z", "private")
    with session_factory() as session:
        assert session.query(DirectMessage).count() == 0


@pytest.mark.anyio("asyncio")
async def test_concurrent_appends_get_gapless_positions(store) -> None:
    senders = [ALICE, BOB] * 5

    appended = await asyncio.gather(
        *(
            store.append(sender, BOB if sender == ALICE else ALICE, f"m{index}")
            for index, sender in enumerate(senders)
        ),
        store.mark_read(BOB, ALICE),
    )

    positions = sorted(message.position for message in appended[:-1])
    assert positions == list(range(len(senders)))
    history = await store.history(ALICE, BOB, limit=5)
    assert [m.position for m in history] == [5, 6, 7, 8, 9]
