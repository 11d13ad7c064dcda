from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import FriendRequestStatus, MessageKind

IDENTITY_LENGTH = 320
DELETED_MESSAGE_BODY = "This message has been deleted."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Registered identity with its opaque, client-managed key material."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(128))
    icon: Mapped[str | None] = mapped_column(Text)
    public_key: Mapped[str | None] = mapped_column(Text)
    encrypted_private_key: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class FriendLink(Base):
    """Relationship row for an unordered pair of identities.

    ``user_a``/``user_b`` hold the pair in sorted order so that a pair can have
    at most one row. A pending row is an outgoing request of ``requester`` and
    an incoming request of the other participant; an accepted row is the
    symmetric friend edge.
    """

    __tablename__ = "friend_links"
    __table_args__ = (
        UniqueConstraint("user_a", "user_b", name="uq_friend_link_pair"),
        Index("ix_friend_links_user_b", "user_b"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_a: Mapped[str] = mapped_column(
        ForeignKey("users.email", ondelete="CASCADE"), nullable=False
    )
    user_b: Mapped[str] = mapped_column(
        ForeignKey("users.email", ondelete="CASCADE"), nullable=False
    )
    requester: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    status: Mapped[FriendRequestStatus] = mapped_column(
        SAEnum(
            FriendRequestStatus,
            name="friend_request_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=FriendRequestStatus.PENDING,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def addressee(self) -> str:
        return self.user_b if self.requester == self.user_a else self.user_a

    def other(self, identity: str) -> str:
        return self.user_b if identity == self.user_a else self.user_a


class Conversation(Base):
    """Append-only message log shared by two identities."""

    __tablename__ = "conversations"

    key: Mapped[str] = mapped_column(String(IDENTITY_LENGTH * 2 + 1), primary_key=True)
    user_a: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False, index=True)
    user_b: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False, index=True)
    next_position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    messages: Mapped[list["DirectMessage"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DirectMessage.position",
    )


class DirectMessage(Base):
    """Individual encrypted message; ``position`` is the store-assigned order."""

    __tablename__ = "direct_messages"
    __table_args__ = (
        UniqueConstraint("conversation_key", "position", name="uq_direct_message_position"),
        UniqueConstraint("conversation_key", "id", name="uq_direct_message_id"),
        Index("ix_direct_messages_recipient_read", "conversation_key", "recipient", "read"),
    )

    pk: Mapped[int] = mapped_column(primary_key=True)
    id: Mapped[str] = mapped_column(String(64), nullable=False)
    conversation_key: Mapped[str] = mapped_column(
        ForeignKey("conversations.key", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    sender: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    recipient: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    client_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    kind: Mapped[MessageKind] = mapped_column(
        SAEnum(
            MessageKind,
            name="message_kind",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=MessageKind.NORMAL,
        nullable=False,
    )

    conversation: Mapped[Conversation] = relationship(back_populates="messages")
