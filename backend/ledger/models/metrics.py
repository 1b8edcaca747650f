"""
Daily metrics snapshots.

One row per UTC date, written by store_daily_metrics (typically from a
daily cron) and overwritten when the same date is stored again. Costs come
from usage_records, so they are exact rather than estimated from
per-token catalog prices.
"""

import uuid
from decimal import Decimal

from sqlalchemy import JSON, BigInteger, Integer, Numeric, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ledger.core.database import Base
from ledger.models.usage import COST_SCALE


class DailyMetrics(Base):
    """App-wide totals for one UTC date."""

    __tablename__ = "daily_metrics"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    date: Mapped[str] = mapped_column(String(10), nullable=False, unique=True)
    total_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_conversations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(24, COST_SCALE), nullable=False, default=Decimal("0"),
    )
    # model slug -> completions that day
    model_usage: Mapped[dict[str, int]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict,
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<DailyMetrics {self.date} active={self.active_users} "
            f"tokens={self.total_tokens_used} cost=${self.total_cost}>"
        )
