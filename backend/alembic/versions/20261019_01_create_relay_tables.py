"""Create relay tables: users, friend links, conversations and messages."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


friend_request_status = sa.Enum("pending", "accepted", name="friend_request_status")
message_kind = sa.Enum("normal", "deleted", name="message_kind")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("email", sa.String(length=320), primary_key=True, nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("icon", sa.Text(), nullable=True),
        sa.Column("public_key", sa.Text(), nullable=True),
        sa.Column("encrypted_private_key", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "friend_links",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_a", sa.String(length=320), nullable=False),
        sa.Column("user_b", sa.String(length=320), nullable=False),
        sa.Column("requester", sa.String(length=320), nullable=False),
        sa.Column("status", friend_request_status, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_a"], ["users.email"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_b"], ["users.email"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_a", "user_b", name="uq_friend_link_pair"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_friend_links_user_b", "friend_links", ["user_b"])

    op.create_table(
        "conversations",
        sa.Column("key", sa.String(length=641), primary_key=True, nullable=False),
        sa.Column("user_a", sa.String(length=320), nullable=False),
        sa.Column("user_b", sa.String(length=320), nullable=False),
        sa.Column("next_position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_conversations_user_a", "conversations", ["user_a"])
    op.create_index("ix_conversations_user_b", "conversations", ["user_b"])

    op.create_table(
        "direct_messages",
        sa.Column("pk", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("conversation_key", sa.String(length=641), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("sender", sa.String(length=320), nullable=False),
        sa.Column("recipient", sa.String(length=320), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("client_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("kind", message_kind, nullable=False),
        sa.ForeignKeyConstraint(["conversation_key"], ["conversations.key"], ondelete="CASCADE"),
        sa.UniqueConstraint("conversation_key", "position", name="uq_direct_message_position"),
        sa.UniqueConstraint("conversation_key", "id", name="uq_direct_message_id"),
        mysql_charset="utf8mb4",
    )
    op.create_index(
        "ix_direct_messages_recipient_read",
        "direct_messages",
        ["conversation_key", "recipient", "read"],
    )


def downgrade() -> None:
    op.drop_index("ix_direct_messages_recipient_read", table_name="direct_messages")
    op.drop_table("direct_messages")

    op.drop_index("ix_conversations_user_b", table_name="conversations")
    op.drop_index("ix_conversations_user_a", table_name="conversations")
    op.drop_table("conversations")

    op.drop_index("ix_friend_links_user_b", table_name="friend_links")
    op.drop_table("friend_links")

    op.drop_table("users")

    message_kind.drop(op.get_bind(), checkfirst=True)
    friend_request_status.drop(op.get_bind(), checkfirst=True)
