"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database (aiosqlite) built from the
ORM metadata. One shared connection (StaticPool) keeps the database alive for
all sessions of a test.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import timezone, tzinfo
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import phantom.db.models  # noqa: F401
from phantom.db.base import Base
from phantom.dependencies import get_db, get_redis_dep
from phantom.main import create_app
from phantom.rewards.achievements import AchievementEvaluator


class FixedTimezoneResolver:
    """Resolves every coordinate to one zone."""

    def __init__(self, tz: tzinfo = timezone.utc) -> None:
        self.tz = tz
        self.calls: list[tuple[float, float]] = []

    async def resolve(self, latitude: float, longitude: float) -> tzinfo | None:
        self.calls.append((latitude, longitude))
        return self.tz


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for service calls and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_mock() -> AsyncMock:
    """Stand-in for the Redis client; records published events."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def tz_resolver() -> FixedTimezoneResolver:
    return FixedTimezoneResolver()


@pytest.fixture
def evaluator(db_session: AsyncSession, redis_mock: AsyncMock, tz_resolver) -> AchievementEvaluator:
    return AchievementEvaluator(db_session, redis_mock, resolver=tz_resolver)


@pytest_asyncio.fixture
async def client(session_factory, redis_mock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test database."""
    app = create_app()

    async def _get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _get_redis() -> AsyncGenerator[object, None]:
        yield redis_mock

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis_dep] = _get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
