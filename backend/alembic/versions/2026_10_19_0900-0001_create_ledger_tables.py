"""create ledger tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    # ── users ───────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("role", sa.String(10), server_default="user", nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint("role IN ('user', 'admin')", name="ck_users_role_valid"),
    )

    # ── conversations / messages ────────────────────────────
    op.create_table(
        "conversations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_conversations_user_id", "conversations", ["user_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("conversation_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])

    # ── models (catalog) ────────────────────────────────────
    op.create_table(
        "models",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("requires_byok", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("prompt_price_usd", sa.Numeric(16, 12), nullable=True),
        sa.Column("completion_price_usd", sa.Numeric(16, 12), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    # ── usage_records ───────────────────────────────────────
    op.create_table(
        "usage_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("conversation_id", sa.Uuid(), nullable=False),
        sa.Column("message_id", sa.Uuid(), nullable=False),
        sa.Column("generation_id", sa.String(255), nullable=False),
        sa.Column("model_slug", sa.String(255), nullable=False),
        sa.Column("prompt_tokens", sa.Integer(), nullable=False),
        sa.Column("completion_tokens", sa.Integer(), nullable=False),
        sa.Column("total_tokens", sa.Integer(), nullable=False),
        sa.Column("cached_tokens", sa.Integer(), nullable=True),
        sa.Column("reasoning_tokens", sa.Integer(), nullable=True),
        sa.Column("cost_in_credits", sa.Numeric(20, 12), nullable=False),
        sa.Column("cost_in_usd", sa.Numeric(20, 12), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["message_id"], ["messages.id"], ondelete="CASCADE"),
        sa.CheckConstraint("prompt_tokens >= 0", name="ck_prompt_tokens_non_neg"),
        sa.CheckConstraint("completion_tokens >= 0", name="ck_completion_tokens_non_neg"),
        sa.CheckConstraint(
            "total_tokens = prompt_tokens + completion_tokens",
            name="ck_total_tokens_sum",
        ),
        sa.CheckConstraint("cost_in_usd >= 0", name="ck_cost_in_usd_non_neg"),
        sa.CheckConstraint("cost_in_credits >= 0", name="ck_cost_in_credits_non_neg"),
    )
    op.create_index("ix_usage_records_user_id", "usage_records", ["user_id"])
    op.create_index("ix_usage_records_conversation_id", "usage_records", ["conversation_id"])
    op.create_index("ix_usage_records_model_slug", "usage_records", ["model_slug"])
    op.create_index("ix_usage_records_timestamp", "usage_records", ["timestamp"])
    op.create_index(
        "ix_usage_records_generation_id", "usage_records", ["generation_id"], unique=True,
    )

    # ── usage_aggregates ────────────────────────────────────
    op.create_table(
        "usage_aggregates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("period", sa.String(10), nullable=False),
        sa.Column("period_key", sa.String(10), nullable=False),
        sa.Column("total_requests", sa.Integer(), nullable=False),
        sa.Column("successful_requests", sa.Integer(), nullable=False),
        sa.Column("failed_requests", sa.Integer(), nullable=False),
        sa.Column("total_tokens", sa.BigInteger(), nullable=False),
        sa.Column("prompt_tokens", sa.BigInteger(), nullable=False),
        sa.Column("completion_tokens", sa.BigInteger(), nullable=False),
        sa.Column("total_cost_usd", sa.Numeric(24, 12), nullable=False),
        sa.Column("avg_processing_time_ms", sa.Float(), nullable=False),
        sa.Column("unique_models_used", sa.Integer(), nullable=False),
        sa.Column("model_slugs", _JSON, nullable=False),
        sa.Column("conversations_started", sa.Integer(), nullable=False),
        sa.Column("files_uploaded", sa.Integer(), nullable=False),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    # One row per bucket per user, and one system row (user_id NULL) per bucket
    op.create_index(
        "uq_usage_aggregates_user_bucket",
        "usage_aggregates",
        ["period", "period_key", "user_id"],
        unique=True,
        postgresql_where=sa.text("user_id IS NOT NULL"),
    )
    op.create_index(
        "uq_usage_aggregates_system_bucket",
        "usage_aggregates",
        ["period", "period_key"],
        unique=True,
        postgresql_where=sa.text("user_id IS NULL"),
    )
    op.create_index("ix_usage_aggregates_user_id", "usage_aggregates", ["user_id"])

    # ── user_quotas / system_alerts ─────────────────────────
    op.create_table(
        "user_quotas",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("quota_type", sa.String(30), nullable=False),
        sa.Column("limit_value", sa.Numeric(20, 8), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "quota_type", name="uq_user_quotas_user_type"),
        sa.CheckConstraint("limit_value > 0", name="ck_user_quotas_limit_pos"),
    )

    op.create_table(
        "system_alerts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("alert_type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("metadata", _JSON, nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("is_resolved", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("resolved_at", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')",
            name="ck_system_alerts_severity_valid",
        ),
    )
    op.create_index("ix_system_alerts_status", "system_alerts", ["is_read", "is_resolved"])
    op.create_index("ix_system_alerts_created_at", "system_alerts", ["created_at"])
    op.create_index("ix_system_alerts_user_id", "system_alerts", ["user_id"])

    # ── admin_logs ──────────────────────────────────────────
    op.create_table(
        "admin_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("admin_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("target_type", sa.String(30), nullable=True),
        sa.Column("target_id", sa.String(255), nullable=True),
        sa.Column("details", _JSON, nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["admin_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_admin_logs_admin_id", "admin_logs", ["admin_id"])
    op.create_index("ix_admin_logs_timestamp", "admin_logs", ["timestamp"])
    op.create_index("ix_admin_logs_action", "admin_logs", ["action"])


def downgrade() -> None:
    op.drop_table("admin_logs")
    op.drop_table("system_alerts")
    op.drop_table("user_quotas")
    op.drop_table("usage_aggregates")
    op.drop_table("usage_records")
    op.drop_table("models")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("users")
