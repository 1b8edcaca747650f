"""
SQLAlchemy model for the `request_logs` table.

One row per request the chat backend handles, written as "pending" when
the request starts and updated once it finishes. Unlike usage_records,
rows are mutable and also cover failed requests, so the error side of
metering can be inspected per request.
"""

import uuid
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ledger.core.database import Base

STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"
REQUEST_STATUSES = (STATUS_PENDING, STATUS_SUCCESS, STATUS_ERROR)


class RequestLog(Base):
    """One request handled by the chat backend."""

    __tablename__ = "request_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    conversation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True,
    )
    message_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True,
    )

    # ── What was asked ──────────────────────────────────────
    request_type: Mapped[str] = mapped_column(String(50), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Outcome ─────────────────────────────────────────────
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Client ──────────────────────────────────────────────
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'success', 'error')",
            name="ck_request_logs_status_valid",
        ),
        CheckConstraint("processing_time_ms >= 0", name="ck_request_logs_processing_non_neg"),
        Index("ix_request_logs_user_id", "user_id"),
        Index("ix_request_logs_status", "status"),
        Index("ix_request_logs_timestamp", "timestamp"),
        Index("ix_request_logs_request_type", "request_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<RequestLog id={self.id!s:.8} type={self.request_type} "
            f"status={self.status} took={self.processing_time_ms}ms>"
        )
