"""
SQLAlchemy model for the `usage_records` table.

Each row represents a single completed LLM call — treated as a financial
transaction, not a throwaway log entry. Rows are inserted once and never
updated or deleted; aggregates are derived from them.

Design notes:
  • cost columns use NUMERIC(20,12) — exact decimal arithmetic, no float rounding;
    12 places hold per-token prices of the cheapest models without rounding.
  • cost_in_usd is stored exactly as the gateway reported it (already USD).
  • timestamp is epoch milliseconds (UTC) so bucketing never depends on
    the database's timezone handling.
  • generation_id is unique — replays of the same upstream generation are
    recognised instead of double-counted.
"""

import uuid
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger.core.database import Base

# Per-record cost: up to 99,999,999 USD with 12 decimal places
COST_PRECISION = 20
COST_SCALE = 12


class UsageRecord(Base):
    """One completed LLM call with the cost the gateway reported."""

    __tablename__ = "usage_records"

    # ── Primary key ─────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── References ──────────────────────────────────────────
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False,
    )
    message_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False,
    )
    generation_id: Mapped[str] = mapped_column(String(255), nullable=False)
    model_slug: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Token counts ────────────────────────────────────────
    prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    cached_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reasoning_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # ── Cost (exact decimal — financial data) ───────────────
    cost_in_credits: Mapped[Decimal] = mapped_column(Numeric(COST_PRECISION, COST_SCALE), nullable=False)
    cost_in_usd: Mapped[Decimal] = mapped_column(Numeric(COST_PRECISION, COST_SCALE), nullable=False)

    # ── Timing ──────────────────────────────────────────────
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # ── Table-level constraints ─────────────────────────────
    __table_args__ = (
        CheckConstraint("prompt_tokens >= 0", name="ck_prompt_tokens_non_neg"),
        CheckConstraint("completion_tokens >= 0", name="ck_completion_tokens_non_neg"),
        CheckConstraint(
            "total_tokens = prompt_tokens + completion_tokens",
            name="ck_total_tokens_sum",
        ),
        CheckConstraint("cost_in_usd >= 0", name="ck_cost_in_usd_non_neg"),
        CheckConstraint("cost_in_credits >= 0", name="ck_cost_in_credits_non_neg"),
        Index("ix_usage_records_user_id", "user_id"),
        Index("ix_usage_records_conversation_id", "conversation_id"),
        Index("ix_usage_records_model_slug", "model_slug"),
        Index("ix_usage_records_timestamp", "timestamp"),
        Index("ix_usage_records_generation_id", "generation_id", unique=True),
    )

    def __repr__(self) -> str:
        return (
            f"<UsageRecord id={self.id!s:.8} model={self.model_slug} "
            f"tokens={self.total_tokens} cost=${self.cost_in_usd}>"
        )
