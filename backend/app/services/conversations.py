"""Append-only per-pair message store."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from rivift.realtime.locks import KeyedLock

from app.models import DELETED_MESSAGE_BODY, Conversation, DirectMessage, MessageKind
from app.models.chat import utcnow
from app.schemas import DirectMessageRead
from app.services.identity import canonical_pair, conversation_key

logger = logging.getLogger(__name__)


class MessageIdConflict(ValueError):
    """A client message id is already taken by the other party's message."""


def serialize_message(message: DirectMessage) -> DirectMessageRead:
    return DirectMessageRead(
        id=message.id,
        conversation=message.conversation_key,
        position=message.position,
        sender=message.sender,
        recipient=message.recipient,
        body=message.body,
        timestamp=message.created_at,
        client_timestamp=message.client_timestamp,
        read=message.read,
        kind=message.kind,
    )


class ConversationStore:
    """Durable log of encrypted messages keyed by the unordered identity pair.

    Order is the position assigned by the store at append time, never the
    client clock. Messages change only through a read receipt from their
    recipient or a soft delete from their sender; rows disappear only when the
    whole conversation is deleted.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        locks: KeyedLock | None = None,
        *,
        history_default_limit: int = 50,
        history_max_limit: int = 200,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks or KeyedLock()
        self._history_default_limit = history_default_limit
        self._history_max_limit = history_max_limit

    async def _serialised(self, key: str, operation, *args):
        async with self._locks.hold(f"conversation:{key}"):
            return await run_in_threadpool(operation, *args)

    async def append(
        self,
        sender: str,
        recipient: str,
        body: str,
        *,
        message_id: str | None = None,
        client_timestamp: datetime | None = None,
    ) -> DirectMessageRead:
        key = conversation_key(sender, recipient)
        return await self._serialised(
            key, self._append, key, sender, recipient, body, message_id, client_timestamp
        )

    def _append(
        self,
        key: str,
        sender: str,
        recipient: str,
        body: str,
        message_id: str | None,
        client_timestamp: datetime | None,
    ) -> DirectMessageRead:
        with self._session_factory.begin() as db:
            conversation = db.execute(
                select(Conversation).where(Conversation.key == key).with_for_update()
            ).scalar_one_or_none()
            if conversation is None:
                user_a, user_b = canonical_pair(sender, recipient)
                conversation = Conversation(key=key, user_a=user_a, user_b=user_b, next_position=0)
                db.add(conversation)
                db.flush()

            if message_id is not None:
                existing = db.execute(
                    select(DirectMessage).where(
                        DirectMessage.conversation_key == key,
                        DirectMessage.id == message_id,
                    )
                ).scalar_one_or_none()
                if existing is not None:
                    if existing.sender != sender or existing.recipient != recipient:
                        raise MessageIdConflict(message_id)
                    logger.debug("Duplicate append of %s in %s ignored", message_id, key)
                    return serialize_message(existing)

            now = utcnow()
            message = DirectMessage(
                id=message_id or uuid.uuid4().hex,
                conversation_key=key,
                position=conversation.next_position,
                sender=sender,
                recipient=recipient,
                body=body,
                client_timestamp=client_timestamp,
                created_at=now,
                read=False,
                kind=MessageKind.NORMAL,
            )
            conversation.next_position += 1
            conversation.last_message_at = now
            db.add(message)
            db.flush()
            return serialize_message(message)

    async def mark_read(self, reader: str, writer: str) -> int:
        """Mark every unread message addressed to *reader* as read.

        Messages travelling the other way (addressed to *writer*) keep their
        state. Returns the number of messages that changed.
        """

        key = conversation_key(reader, writer)
        return await self._serialised(key, self._mark_read, key, reader)

    def _mark_read(self, key: str, reader: str) -> int:
        with self._session_factory.begin() as db:
            result = db.execute(
                update(DirectMessage)
                .where(
                    DirectMessage.conversation_key == key,
                    DirectMessage.recipient == reader,
                    DirectMessage.read.is_(False),
                )
                .values(read=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    async def soft_delete_message(self, key: str, message_id: str, requester: str) -> bool:
        return await self._serialised(key, self._soft_delete_message, key, message_id, requester)

    def _soft_delete_message(self, key: str, message_id: str, requester: str) -> bool:
        with self._session_factory.begin() as db:
            message = db.execute(
                select(DirectMessage).where(
                    DirectMessage.conversation_key == key,
                    DirectMessage.id == message_id,
                )
            ).scalar_one_or_none()
            if message is None or message.sender != requester:
                return False
            if message.kind == MessageKind.DELETED:
                return False
            message.body = DELETED_MESSAGE_BODY
            message.kind = MessageKind.DELETED
        logger.info("Message %s in %s deleted by sender", message_id, key)
        return True

    async def delete_conversation(self, first: str, second: str) -> bool:
        key = conversation_key(first, second)
        return await self._serialised(key, self._delete_conversation, key)

    def _delete_conversation(self, key: str) -> bool:
        with self._session_factory.begin() as db:
            db.execute(delete(DirectMessage).where(DirectMessage.conversation_key == key))
            result = db.execute(delete(Conversation).where(Conversation.key == key))
            removed = bool(result.rowcount)
        if removed:
            logger.info("Conversation %s deleted", key)
        return removed

    async def history(
        self,
        first: str,
        second: str,
        limit: int | None = None,
        offset: int = 0,
        order: str = "asc",
    ) -> list[DirectMessageRead]:
        """Return one page of the conversation.

        Pages are counted from the newest message: ``offset`` newest messages
        are skipped and the next ``limit`` ones returned, oldest first for
        ``order="asc"`` and newest first for ``order="desc"``.
        """

        if order not in {"asc", "desc"}:
            raise ValueError("order must be 'asc' or 'desc'")
        if limit is None:
            limit = self._history_default_limit
        limit = max(1, min(limit, self._history_max_limit))
        offset = max(0, offset)
        key = conversation_key(first, second)
        page = await run_in_threadpool(self._history, key, limit, offset)
        return page if order == "desc" else list(reversed(page))

    def _history(self, key: str, limit: int, offset: int) -> list[DirectMessageRead]:
        with self._session_factory() as db:
            stmt = (
                select(DirectMessage)
                .where(DirectMessage.conversation_key == key)
                .order_by(DirectMessage.position.desc())
                .offset(offset)
                .limit(limit)
            )
            return [serialize_message(message) for message in db.execute(stmt).scalars()]

    async def unread_count(self, identity: str, counterpart: str) -> int:
        return await run_in_threadpool(
            self._unread_count, conversation_key(identity, counterpart), identity
        )

    def _unread_count(self, key: str, identity: str) -> int:
        with self._session_factory() as db:
            stmt = select(func.count(DirectMessage.pk)).where(
                DirectMessage.conversation_key == key,
                DirectMessage.recipient == identity,
                DirectMessage.read.is_(False),
            )
            return db.execute(stmt).scalar_one()

    async def unread_counts(self, identity: str) -> dict[str, int]:
        """Unread totals per counterpart, for reconciliation after reconnecting."""

        return await run_in_threadpool(self._unread_counts, identity)

    def _unread_counts(self, identity: str) -> dict[str, int]:
        with self._session_factory() as db:
            stmt = (
                select(DirectMessage.sender, func.count(DirectMessage.pk))
                .where(DirectMessage.recipient == identity, DirectMessage.read.is_(False))
                .group_by(DirectMessage.sender)
            )
            return {sender: count for sender, count in db.execute(stmt)}
