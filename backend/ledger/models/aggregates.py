"""
SQLAlchemy model for the `usage_aggregates` table (pre-aggregated buckets).

These rows are derived from usage_records and exist for fast dashboard and
quota reads. usage_records remains the source of truth — aggregates can be
rebuilt by replaying records (see services.aggregates.rebuild_aggregates).

Design notes:
  • One row per (period, period_key, user_id). user_id NULL = system-wide.
    NULLs never collide in a plain UNIQUE constraint, so two partial unique
    indexes cover user rows and system rows separately.
  • NUMERIC(24,12) for cost — same scale as usage_records, four more integer
    digits since system-wide monthly totals sum every record.
  • BIGINT for token sums — aggregates sum across many records.
  • model_slugs keeps unique_models_used exact without rescanning records.
"""

import datetime
import uuid
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    TIMESTAMP,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from ledger.core.database import Base
from ledger.models.usage import COST_SCALE


class UsageAggregate(Base):
    """
    Rolling totals for one daily / weekly / monthly bucket.

    Invariants:
      total_requests == successful_requests + failed_requests
      total_tokens   == prompt_tokens + completion_tokens
    """

    __tablename__ = "usage_aggregates"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    period: Mapped[str] = mapped_column(String(10), nullable=False)
    period_key: Mapped[str] = mapped_column(String(10), nullable=False)

    # ── Request counts ──────────────────────────────────────
    total_requests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_requests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_requests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Tokens / cost ───────────────────────────────────────
    total_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    prompt_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    completion_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_cost_usd: Mapped[Decimal] = mapped_column(
        Numeric(24, COST_SCALE), nullable=False, default=Decimal("0"),
    )
    avg_processing_time_ms: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # ── Activity ────────────────────────────────────────────
    unique_models_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    model_slugs: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list,
    )
    conversations_started: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    files_uploaded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index(
            "uq_usage_aggregates_user_bucket",
            "period", "period_key", "user_id",
            unique=True,
            postgresql_where=text("user_id IS NOT NULL"),
            sqlite_where=text("user_id IS NOT NULL"),
        ),
        Index(
            "uq_usage_aggregates_system_bucket",
            "period", "period_key",
            unique=True,
            postgresql_where=text("user_id IS NULL"),
            sqlite_where=text("user_id IS NULL"),
        ),
        Index("ix_usage_aggregates_user_id", "user_id"),
    )
    # Fetch created_at / updated_at in the same round trip (no lazy load on async sessions)
    __mapper_args__ = {"eager_defaults": True}

    @property
    def is_system(self) -> bool:
        return self.user_id is None

    def __repr__(self) -> str:
        scope = "system" if self.user_id is None else f"user={self.user_id!s:.8}"
        return (
            f"<UsageAggregate {self.period}:{self.period_key} {scope} "
            f"requests={self.total_requests} tokens={self.total_tokens}>"
        )
