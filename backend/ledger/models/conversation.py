"""
Conversation and message models.

Only the columns the ledger needs: ownership for existence checks and the
title shown in the recent-activity feed. Message content lives in the
conversation store, not here.
"""

import uuid
import datetime

from sqlalchemy import ForeignKey, Index, String, Text, TIMESTAMP, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from ledger.core.database import Base


class Conversation(Base):
    """A chat thread owned by one user."""

    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_conversations_user_id", "user_id"),
    )
    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self) -> str:
        return f"<Conversation id={self.id!s:.8} title={self.title!r}>"


class Message(Base):
    """One message inside a conversation."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="assistant")
    created_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_messages_conversation_id", "conversation_id"),
    )
    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self) -> str:
        return f"<Message id={self.id!s:.8} role={self.role}>"
