"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates users, api_keys and usage_events.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_19_0000"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("subscription", sa.String(20), nullable=False, server_default="free"),
        sa.Column("copy_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_copy_limit", sa.Integer(), nullable=True, server_default="2"),
        sa.Column(
            "copied_key_ids",
            postgresql.ARRAY(postgresql.UUID(as_uuid=True)),
            nullable=False,
            server_default="{}",
        ),
        sa.Column(
            "last_copy_reset",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
        sa.CheckConstraint(
            "subscription IN ('free', 'premium', 'enterprise')", name="ck_users_subscription"
        ),
        sa.CheckConstraint("copy_count >= 0", name="ck_users_copy_count_non_negative"),
    )
    op.create_index("idx_users_created_at", "users", ["created_at"])

    op.create_table(
        "api_keys",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("api_key", sa.Text(), nullable=False),
        sa.Column("tool_name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("copy_count", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "uploaded_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("mirror_id", sa.String(255), nullable=True, unique=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint(
            "category IN ('Gemini', 'GPT', 'Claude', 'Bharat Cloud AI')",
            name="ck_api_keys_category",
        ),
        sa.CheckConstraint("copy_count >= 0", name="ck_api_keys_copy_count_non_negative"),
    )
    op.create_index("ix_api_keys_uploaded_by", "api_keys", ["uploaded_by"])
    op.create_index("idx_api_keys_category_active", "api_keys", ["category", "is_active"])
    op.create_index("idx_api_keys_expiry_date", "api_keys", ["expiry_date"])
    op.create_index("idx_api_keys_created_at", "api_keys", ["created_at"])

    op.create_table(
        "usage_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("api_key_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(10), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column(
            "timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint("action IN ('view', 'copy')", name="ck_usage_events_action"),
    )
    op.create_index(
        "idx_usage_events_user_timestamp", "usage_events", ["user_id", "timestamp"]
    )
    op.create_index("idx_usage_events_key_action", "usage_events", ["api_key_id", "action"])
    op.create_index("idx_usage_events_timestamp", "usage_events", ["timestamp"])


def downgrade() -> None:
    op.drop_table("usage_events")
    op.drop_table("api_keys")
    op.drop_table("users")
