"""
Quota and alert models for usage threshold monitoring.

  • user_quotas   — per-user limits, one row per (user_id, quota_type).
                    quota_type is "<period>_tokens" or "<period>_cost".
  • system_alerts — raised when a user's bucket crosses a quota fraction.
                    user_id NULL marks a system-wide alert.
"""

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.sql.expression import false, true
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ledger.core.database import Base

SEVERITIES = ("low", "medium", "high", "critical")


class UserQuota(Base):
    """A token or cost limit for one user and one period."""

    __tablename__ = "user_quotas"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    quota_type: Mapped[str] = mapped_column(String(30), nullable=False)
    limit_value: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true(),
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "quota_type", name="uq_user_quotas_user_type"),
        CheckConstraint("limit_value > 0", name="ck_user_quotas_limit_pos"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserQuota user={self.user_id!s:.8} type={self.quota_type} "
            f"limit={self.limit_value}>"
        )


class SystemAlert(Base):
    """One alert shown on the admin dashboard."""

    __tablename__ = "system_alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True,
    )
    # Column named `metadata_` — `metadata` is reserved on declarative classes
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
    )
    is_read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(),
    )
    is_resolved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(),
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    resolved_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')",
            name="ck_system_alerts_severity_valid",
        ),
        Index("ix_system_alerts_status", "is_read", "is_resolved"),
        Index("ix_system_alerts_created_at", "created_at"),
        Index("ix_system_alerts_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<SystemAlert id={self.id!s:.8} type={self.alert_type} "
            f"severity={self.severity} resolved={self.is_resolved}>"
        )
