from __future__ import annotations

import asyncio

import pytest

from app.models import FriendLink, RelationState
from app.services import RelationshipGraph

ALICE = "alice@example.com"
BOB = "bob@example.com"
CAROL = "carol@example.com"


@pytest.fixture()
def graph(session_factory, make_users) -> RelationshipGraph:
    make_users(ALICE, BOB, CAROL)
    return RelationshipGraph(session_factory)


async def _sets(graph: RelationshipGraph, identity: str) -> tuple[list[str], list[str], list[str]]:
    snapshot = await graph.snapshot(identity)
    return snapshot.friends, snapshot.requests, snapshot.sent_requests


@pytest.mark.anyio("asyncio")
async def test_request_then_accept_is_symmetric(graph) -> None:
    assert await graph.send_request(ALICE, BOB)
    assert await _sets(graph, ALICE) == ([], [], [BOB])
    assert await _sets(graph, BOB) == ([], [ALICE], [])
    assert await graph.relation(ALICE, BOB) == RelationState.OUTGOING
    assert await graph.relation(BOB, ALICE) == RelationState.INCOMING

    assert await graph.accept_request(BOB, ALICE)
    assert await _sets(graph, ALICE) == ([BOB], [], [])
    assert await _sets(graph, BOB) == ([ALICE], [], [])
    assert await graph.relation(BOB, ALICE) == RelationState.FRIENDS


@pytest.mark.anyio("asyncio")
async def test_duplicate_and_crossed_requests_are_noops(graph, session_factory) -> None:
    assert await graph.send_request(ALICE, BOB)
    assert not await graph.send_request(ALICE, BOB)
    assert not await graph.send_request(BOB, ALICE)

    with session_factory() as session:
        assert session.query(FriendLink).count() == 1
    assert await _sets(graph, BOB) == ([], [ALICE], [])


@pytest.mark.anyio("asyncio")
async def test_invalid_targets_are_rejected(graph) -> None:
    assert not await graph.send_request(ALICE, ALICE)
    assert not await graph.send_request(ALICE, "ghost@example.com")
    assert not await graph.accept_request(BOB, ALICE)


@pytest.mark.anyio("asyncio")
async def test_only_the_addressee_can_accept(graph) -> None:
    await graph.send_request(ALICE, BOB)

    assert not await graph.accept_request(ALICE, BOB)
    assert await graph.accept_request(BOB, ALICE)
    assert not await graph.accept_request(BOB, ALICE)


@pytest.mark.anyio("asyncio")
async def test_reject_and_cancel_clear_both_sides(graph) -> None:
    await graph.send_request(ALICE, BOB)
    assert await graph.reject_request(BOB, ALICE)
    assert await _sets(graph, ALICE) == ([], [], [])
    assert await _sets(graph, BOB) == ([], [], [])
    assert not await graph.reject_request(BOB, ALICE)

    await graph.send_request(ALICE, CAROL)
    assert not await graph.cancel_request(CAROL, ALICE)
    assert await graph.cancel_request(ALICE, CAROL)
    assert await graph.relation(CAROL, ALICE) == RelationState.NONE

    # A cleared pair can start over.
    assert await graph.send_request(BOB, ALICE)


@pytest.mark.anyio("asyncio")
async def test_delete_friend_removes_edge_both_ways(graph) -> None:
    await graph.send_request(ALICE, BOB)
    await graph.accept_request(BOB, ALICE)

    assert await graph.delete_friend(BOB, ALICE)
    assert await graph.friends(ALICE) == []
    assert await graph.friends(BOB) == []
    assert not await graph.delete_friend(ALICE, BOB)


@pytest.mark.anyio("asyncio")
async def test_delete_friend_ignores_pending_request(graph) -> None:
    await graph.send_request(ALICE, BOB)

    assert not await graph.delete_friend(ALICE, BOB)
    assert await graph.relation(ALICE, BOB) == RelationState.OUTGOING


@pytest.mark.anyio("asyncio")
async def test_interleaved_requests_converge_to_one_pending_row(graph, session_factory) -> None:
    results = await asyncio.gather(
        graph.send_request(ALICE, BOB),
        graph.send_request(ALICE, BOB),
        graph.send_request(BOB, ALICE),
    )

    assert sum(results) == 1
    with session_factory() as session:
        assert session.query(FriendLink).count() == 1
    alice, bob = await graph.snapshot(ALICE), await graph.snapshot(BOB)
    assert len(alice.sent_requests) + len(bob.sent_requests) == 1
    assert (ALICE in bob.requests) == (BOB in alice.sent_requests)
