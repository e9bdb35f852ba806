"""
Pytest configuration and fixtures for analytics engine tests
"""

import os
import sys
from collections.abc import AsyncGenerator
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

# Test database: in-memory SQLite, one connection shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

import analytics_engine.database as database_module  # noqa: E402
import analytics_engine.models  # noqa: E402, F401
from analytics_engine.config import settings  # noqa: E402
from analytics_engine.database import Base, get_db  # noqa: E402
from analytics_engine.main import app  # noqa: E402
from analytics_engine.trackable import Actor, EntityRef, RequestInfo  # noqa: E402
from analytics_engine.utils.cache import cache_manager  # noqa: E402

FIXED_NOW = datetime(2024, 3, 14, 12, 0, 0)
FIREFOX_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


@pytest.fixture(autouse=True)
def disable_redis():
    """Keep the shared cache manager offline so no test reaches for Redis."""
    saved = (cache_manager._redis, cache_manager._enabled, cache_manager._last_connect_attempt)
    cache_manager._redis = None
    cache_manager._enabled = False
    cache_manager._last_connect_attempt = float("inf")
    yield cache_manager
    cache_manager._redis, cache_manager._enabled, cache_manager._last_connect_attempt = saved


@pytest.fixture(autouse=True)
def restore_settings():
    """Undo per-test changes to the global settings object."""
    snapshot = settings.model_dump()
    yield settings
    for name, value in snapshot.items():
        setattr(settings, name, value)


@pytest.fixture(scope="function")
async def test_engine(monkeypatch):
    """
    Fresh in-memory database with all tables for each test.
    The app's engine and session factory are patched to use it.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    monkeypatch.setattr(database_module, "engine", engine)
    monkeypatch.setattr(database_module, "AsyncSessionLocal", session_factory)
    monkeypatch.setattr("analytics_engine.utils.scheduled_jobs.AsyncSessionLocal", session_factory)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture(scope="function")
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for tests that need it."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, with get_db served from the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def entity() -> EntityRef:
    return EntityRef("article", "42")


@pytest.fixture
def user_a() -> Actor:
    return Actor(user_id="user-a", session_id="sess-a", ip_address="127.0.0.1")


@pytest.fixture
def user_b() -> Actor:
    return Actor(user_id="user-b", session_id="sess-b", ip_address="192.168.1.20")


@pytest.fixture
def visitor() -> Actor:
    return Actor(visitor_token="visitor-1", session_id="sess-v", ip_address="10.0.0.7")


@pytest.fixture
def page_request() -> RequestInfo:
    return RequestInfo(
        path="/articles/42",
        url="https://example.com/articles/42",
        referer="https://search.example/",
        user_agent=FIREFOX_UA,
        languages="en-US,en;q=0.9",
        headers={"user-agent": FIREFOX_UA},
    )


def miss_first_lookup(monkeypatch, owner, name: str) -> dict:
    """
    Make the next call of ``owner.name`` report no row, as if another writer
    inserted it just after the lookup. Later calls go to the real lookup.
    """
    original = getattr(owner, name)
    calls = {"count": 0}

    async def lookup(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return await original(*args, **kwargs)

    monkeypatch.setattr(owner, name, staticmethod(lookup))
    return calls
