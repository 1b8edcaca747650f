"""
User model — the account a usage record is attributed to.

Accounts are owned by the identity provider; this table mirrors the
fields dashboards display (name, email, avatar) plus the role used for
admin-only endpoints.
"""

import uuid
import datetime

from sqlalchemy import CheckConstraint, String, Text, TIMESTAMP, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from ledger.core.database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"


class User(Base):
    """One end user of the chat application."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ROLE_USER, server_default=ROLE_USER,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="ck_users_role_valid"),
    )
    __mapper_args__ = {"eager_defaults": True}

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self) -> str:
        return f"<User id={self.id!s:.8} email={self.email!r} role={self.role}>"
