"""
Model catalog entry — metadata for one model slug.

The catalog is synced from the upstream marketplace elsewhere; the ledger
reads `requires_byok` to split usage between user-funded (BYOK) and
system-funded spend, and admins can toggle `is_enabled`.

Prices are per token in USD, informational only: recorded costs always come
from the gateway's response, never from this table.
"""

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, Numeric, String, Text, Uuid
from sqlalchemy.sql.expression import false, true
from sqlalchemy.orm import Mapped, mapped_column

from ledger.core.database import Base


class CatalogModel(Base):
    """One LLM offered through the gateway."""

    __tablename__ = "models"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    requires_byok: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(),
    )
    is_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true(),
    )
    prompt_price_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 12), nullable=True)
    completion_price_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 12), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CatalogModel slug={self.slug!r} byok={self.requires_byok} "
            f"enabled={self.is_enabled}>"
        )
