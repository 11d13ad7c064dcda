"""Friend relationship state machine.

Each unordered pair of identities owns at most one ``FriendLink`` row, so the
per-identity sets derived from it (friends, incoming ``requests`` and
outgoing ``sent_requests``) are mutually exclusive and mirror each other by
construction. Every transition is a single transaction on that row and
invalid transitions are reported as ``False`` rather than raised, which keeps
duplicate or reordered client retries harmless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from rivift.realtime.locks import KeyedLock

from app.models import FriendLink, FriendRequestStatus, RelationState, User
from app.models.chat import utcnow
from app.services.identity import canonical_pair, conversation_key

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RelationshipSnapshot:
    """Relationship sets of one identity."""

    identity: str
    friends: list[str] = field(default_factory=list)
    requests: list[str] = field(default_factory=list)
    sent_requests: list[str] = field(default_factory=list)


def _get_link(db: Session, first: str, second: str) -> FriendLink | None:
    user_a, user_b = canonical_pair(first, second)
    stmt = select(FriendLink).where(FriendLink.user_a == user_a, FriendLink.user_b == user_b)
    return db.execute(stmt).scalar_one_or_none()


class RelationshipGraph:
    def __init__(self, session_factory: sessionmaker[Session], locks: KeyedLock | None = None) -> None:
        self._session_factory = session_factory
        self._locks = locks or KeyedLock()

    async def _serialised(self, first: str, second: str, operation, *args) -> bool:
        async with self._locks.hold(f"pair:{conversation_key(first, second)}"):
            return await run_in_threadpool(operation, *args)

    async def send_request(self, sender: str, target: str) -> bool:
        if sender == target:
            return False
        return await self._serialised(sender, target, self._send_request, sender, target)

    def _send_request(self, sender: str, target: str) -> bool:
        try:
            with self._session_factory.begin() as db:
                if db.get(User, sender) is None or db.get(User, target) is None:
                    return False
                if _get_link(db, sender, target) is not None:
                    return False
                user_a, user_b = canonical_pair(sender, target)
                db.add(
                    FriendLink(
                        user_a=user_a,
                        user_b=user_b,
                        requester=sender,
                        status=FriendRequestStatus.PENDING,
                    )
                )
        except IntegrityError:
            # Another writer created the row for this pair first.
            logger.info("Concurrent friend request between %s and %s", sender, target)
            return False
        logger.info("Friend request %s -> %s", sender, target)
        return True

    async def accept_request(self, accepter: str, requester: str) -> bool:
        """Accept the pending request that *requester* sent to *accepter*."""

        return await self._serialised(accepter, requester, self._accept_request, accepter, requester)

    def _accept_request(self, accepter: str, requester: str) -> bool:
        with self._session_factory.begin() as db:
            link = _get_link(db, accepter, requester)
            if (
                link is None
                or link.status != FriendRequestStatus.PENDING
                or link.requester != requester
            ):
                return False
            link.status = FriendRequestStatus.ACCEPTED
            link.responded_at = utcnow()
        logger.info("Friend request %s -> %s accepted", requester, accepter)
        return True

    async def reject_request(self, rejecter: str, requester: str) -> bool:
        return await self._serialised(
            rejecter, requester, self._drop_pending, requester, rejecter
        )

    async def cancel_request(self, requester: str, target: str) -> bool:
        return await self._serialised(requester, target, self._drop_pending, requester, target)

    def _drop_pending(self, requester: str, addressee: str) -> bool:
        with self._session_factory.begin() as db:
            link = _get_link(db, requester, addressee)
            if (
                link is None
                or link.status != FriendRequestStatus.PENDING
                or link.requester != requester
            ):
                return False
            db.delete(link)
        return True

    async def delete_friend(self, first: str, second: str) -> bool:
        """Remove the friend edge in both directions.

        The shared conversation is not touched here; callers delete it through
        the conversation store.
        """

        return await self._serialised(first, second, self._delete_friend, first, second)

    def _delete_friend(self, first: str, second: str) -> bool:
        with self._session_factory.begin() as db:
            link = _get_link(db, first, second)
            if link is None or link.status != FriendRequestStatus.ACCEPTED:
                return False
            db.delete(link)
        logger.info("Friendship %s <-> %s removed", first, second)
        return True

    async def relation(self, identity: str, other: str) -> RelationState:
        return await run_in_threadpool(self._relation, identity, other)

    def _relation(self, identity: str, other: str) -> RelationState:
        with self._session_factory() as db:
            link = _get_link(db, identity, other)
            if link is None:
                return RelationState.NONE
            if link.status == FriendRequestStatus.ACCEPTED:
                return RelationState.FRIENDS
            if link.requester == identity:
                return RelationState.OUTGOING
            return RelationState.INCOMING

    async def snapshot(self, identity: str) -> RelationshipSnapshot:
        return await run_in_threadpool(self._snapshot, identity)

    def _snapshot(self, identity: str) -> RelationshipSnapshot:
        snapshot = RelationshipSnapshot(identity=identity)
        with self._session_factory() as db:
            stmt = (
                select(FriendLink)
                .where(or_(FriendLink.user_a == identity, FriendLink.user_b == identity))
                .order_by(FriendLink.created_at, FriendLink.id)
            )
            for link in db.execute(stmt).scalars():
                other = link.other(identity)
                if link.status == FriendRequestStatus.ACCEPTED:
                    snapshot.friends.append(other)
                elif link.requester == identity:
                    snapshot.sent_requests.append(other)
                else:
                    snapshot.requests.append(other)
        return snapshot

    async def friends(self, identity: str) -> list[str]:
        return (await self.snapshot(identity)).friends
