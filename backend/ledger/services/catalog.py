"""
Model catalog lookups used by the ledger.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.errors import NotFoundError
from ledger.models.catalog import CatalogModel


async def get_model(session: AsyncSession, slug: str) -> CatalogModel:
    result = await session.execute(select(CatalogModel).where(CatalogModel.slug == slug))
    model = result.scalar_one_or_none()
    if model is None:
        raise NotFoundError(f"Model '{slug}' is not in the catalog")
    return model


async def set_model_enabled(session: AsyncSession, slug: str, is_enabled: bool) -> CatalogModel:
    """Toggle a catalog entry. Flushed only; the caller commits with its audit row."""
    model = await get_model(session, slug)
    model.is_enabled = is_enabled
    await session.flush()
    return model
