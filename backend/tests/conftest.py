"""
Usage Ledger - Pytest Configuration
===================================

Shared fixtures: an in-memory SQLite database per test, seeded
users / conversations / messages, and an HTTP client wired to the app
with the database dependency overridden.
"""

import datetime
import hashlib
import os
import uuid
from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest

# Set test environment BEFORE any imports
SERVICE_TOKEN = "ul_svc_test-token"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SERVICE_TOKEN_HASH"] = hashlib.sha256(SERVICE_TOKEN.encode("utf-8")).hexdigest()

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import app components after setting env vars
from ledger.core.database import Base, get_db_session
from ledger.core.time import to_epoch_ms
from ledger.main import app
from ledger.models.catalog import CatalogModel
from ledger.models.conversation import Conversation, Message
from ledger.models.user import ROLE_ADMIN, User
from ledger.services.events import UsageEvent

# 2025-01-15 12:00:00 UTC — a Wednesday in ISO week 2025-W03
NOW = datetime.datetime(2025, 1, 15, 12, 0, tzinfo=datetime.timezone.utc)
NOW_MS = to_epoch_ms(NOW)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine():
    """Fresh in-memory database with every table created."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as db_session:
        yield db_session


# =============================================================================
# Seed Data
# =============================================================================

@pytest.fixture
def now() -> datetime.datetime:
    return NOW


@pytest.fixture
def make_user(session):
    """Factory: insert a user and return it."""

    async def _make(name: str = "Ada", email: str | None = None, role: str = "user") -> User:
        user = User(name=name, email=email or f"{uuid.uuid4().hex[:8]}@example.com", role=role)
        session.add(user)
        await session.commit()
        return user

    return _make


@pytest.fixture
def make_thread(session):
    """Factory: insert a conversation with one assistant message."""

    async def _make(user: User, title: str | None = "Test chat") -> tuple[Conversation, Message]:
        conversation = Conversation(user_id=user.id, title=title)
        session.add(conversation)
        await session.flush()
        message = Message(conversation_id=conversation.id, role="assistant")
        session.add(message)
        await session.commit()
        return conversation, message

    return _make


@pytest.fixture
async def user(make_user) -> User:
    return await make_user(name="Ada Lovelace", email="ada@example.com")


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user(name="Grace Hopper", email="grace@example.com", role=ROLE_ADMIN)


@pytest.fixture
async def thread(make_thread, user) -> tuple[Conversation, Message]:
    return await make_thread(user)


@pytest.fixture
async def catalog(session) -> list[CatalogModel]:
    models = [
        CatalogModel(slug="openai/gpt-4o-mini", name="GPT-4o mini", provider="openai"),
        CatalogModel(
            slug="anthropic/claude-3.5-sonnet",
            name="Claude 3.5 Sonnet",
            provider="anthropic",
            requires_byok=True,
        ),
    ]
    session.add_all(models)
    await session.commit()
    return models


@pytest.fixture
def make_event(user, thread):
    """Factory: a valid UsageEvent for the default user and thread."""
    conversation, message = thread

    def _make(**overrides) -> UsageEvent:
        prompt = overrides.pop("prompt_tokens", 60)
        completion = overrides.pop("completion_tokens", 40)
        fields = dict(
            user_id=user.id,
            conversation_id=conversation.id,
            message_id=message.id,
            generation_id=f"gen-{uuid.uuid4().hex}",
            model_slug="openai/gpt-4o-mini",
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
            cost_in_credits=Decimal("0.001"),
            cost_in_usd=Decimal("0.001"),
            timestamp=NOW_MS,
            processing_time_ms=1000,
        )
        fields.update(overrides)
        return UsageEvent(**fields)

    return _make


# =============================================================================
# FastAPI Test Client
# =============================================================================

@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async client against the real app, using the test database."""

    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as db_session:
            yield db_session

    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {SERVICE_TOKEN}"},
    ) as http:
        yield http
    app.dependency_overrides.clear()
