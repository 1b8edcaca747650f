"""
Dev bootstrap script — seed an admin, a few catalog models and a service token.

Usage:
    python -m scripts.bootstrap_dev

This will:
  1. Create an admin user (admin@localhost) if missing
  2. Seed two catalog models (one system-funded, one BYOK)
  3. Generate a service token and print it ONCE (only its hash is configured)

Put the printed hash into SERVICE_TOKEN_HASH, give the raw token to the
chat backend.
"""

import asyncio
import sys
from decimal import Decimal

# Ensure the project root is on the path
sys.path.insert(0, ".")

from sqlalchemy import select

from ledger.auth.hashing import generate_service_token
from ledger.core.database import async_session_factory, engine
from ledger.models.catalog import CatalogModel
from ledger.models.user import ROLE_ADMIN, User

_DEV_MODELS = (
    CatalogModel(
        slug="openai/gpt-4o-mini",
        name="GPT-4o mini",
        provider="openai",
        requires_byok=False,
        prompt_price_usd=Decimal("0.00000015"),
        completion_price_usd=Decimal("0.0000006"),
    ),
    CatalogModel(
        slug="anthropic/claude-3.5-sonnet",
        name="Claude 3.5 Sonnet",
        provider="anthropic",
        requires_byok=True,
        prompt_price_usd=Decimal("0.000003"),
        completion_price_usd=Decimal("0.000015"),
    ),
)


async def main() -> None:
    admin_email = "admin@localhost"

    async with async_session_factory() as session:
        # ── Admin user ──────────────────────────────────────
        admin = (
            await session.execute(select(User).where(User.email == admin_email))
        ).scalar_one_or_none()
        if admin is None:
            admin = User(name="Dev Admin", email=admin_email, role=ROLE_ADMIN)
            session.add(admin)

        # ── Catalog ─────────────────────────────────────────
        existing = set(
            (await session.execute(select(CatalogModel.slug))).scalars().all()
        )
        for model in _DEV_MODELS:
            if model.slug not in existing:
                session.add(model)

        await session.commit()

    # ── Service token ───────────────────────────────────────
    raw_token, token_hash = generate_service_token()

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Dev Bootstrap Complete")
    print("=" * 60)
    print()
    print(f"  Admin:      {admin.email}")
    print(f"  Admin ID:   {admin.id}")
    print()
    print(f"  Service token:      {raw_token}")
    print(f"  SERVICE_TOKEN_HASH: {token_hash}")
    print()
    print("  ⚠  Copy the token now — it will NEVER be shown again.")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
