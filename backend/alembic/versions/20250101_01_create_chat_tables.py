"""create chat tables

Revision ID: 20250101_01
Revises: 
Create Date: 2025-01-01 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20250101_01"
down_revision = None
branch_labels = None
depends_on = None


CHAT_TYPE = sa.Enum("direct", "group", name="chat_type")
PARTICIPANT_ROLE = sa.Enum("admin", "member", name="participant_role")
CONTENT_TYPE = sa.Enum("text", "image", "file", "system", name="message_content_type")
FRIEND_REQUEST_STATUS = sa.Enum("pending", "accepted", "declined", name="friend_request_status")


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=None if nullable else sa.func.now(),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("external_id", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=30), nullable=False),
        sa.Column("first_name", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("avatar", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("bio", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("last_seen"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)

    op.create_table(
        "user_blocks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("blocker_id", sa.Integer(), nullable=False),
        sa.Column("blocked_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["blocker_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["blocked_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_user_block_pair"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "friend_links",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("addressee_id", sa.Integer(), nullable=False),
        sa.Column("status", FRIEND_REQUEST_STATUS, nullable=False, server_default="pending"),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["addressee_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("requester_id", "addressee_id", name="uq_friend_link_pair"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "chats",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("type", CHAT_TYPE, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("creator_id", sa.Integer(), nullable=True),
        sa.Column("avatar", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("last_message_id", sa.Integer(), nullable=True),
        _timestamp("last_activity"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["creator_id"], ["users.id"], ondelete="SET NULL"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_chats_last_activity", "chats", ["last_activity"])

    op.create_table(
        "chat_participants",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("chat_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", PARTICIPANT_ROLE, nullable=False, server_default="member"),
        _timestamp("joined_at"),
        _timestamp("last_read"),
        sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("chat_id", "user_id", name="uq_chat_participant"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_chat_participants_user", "chat_participants", ["user_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("chat_id", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("content_text", sa.Text(), nullable=False),
        sa.Column("content_type", CONTENT_TYPE, nullable=False, server_default="text"),
        sa.Column("file_url", sa.String(length=1024), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("file_mime_type", sa.String(length=128), nullable=True),
        sa.Column("reply_to_id", sa.Integer(), nullable=True),
        sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("deleted_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reply_to_id"], ["messages.id"], ondelete="SET NULL"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_messages_chat_created_at", "messages", ["chat_id", "created_at"])
    op.create_index("ix_messages_sender", "messages", ["sender_id"])

    op.create_foreign_key(
        "fk_chats_last_message",
        "chats",
        "messages",
        ["last_message_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "message_edits",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("message_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _timestamp("edited_at"),
        sa.ForeignKeyConstraint(["message_id"], ["messages.id"], ondelete="CASCADE"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "message_reactions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("message_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("emoji", sa.String(length=32), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["message_id"], ["messages.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_reaction"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_reactions_message", "message_reactions", ["message_id"])


def downgrade() -> None:
    op.drop_index("ix_reactions_message", table_name="message_reactions")
    op.drop_table("message_reactions")
    op.drop_table("message_edits")
    op.drop_constraint("fk_chats_last_message", "chats", type_="foreignkey")
    op.drop_index("ix_messages_sender", table_name="messages")
    op.drop_index("ix_messages_chat_created_at", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_chat_participants_user", table_name="chat_participants")
    op.drop_table("chat_participants")
    op.drop_index("ix_chats_last_activity", table_name="chats")
    op.drop_table("chats")
    op.drop_table("friend_links")
    op.drop_table("user_blocks")
    op.drop_index("ix_users_external_id", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (FRIEND_REQUEST_STATUS, CONTENT_TYPE, PARTICIPANT_ROLE, CHAT_TYPE):
        enum.drop(bind, checkfirst=True)
