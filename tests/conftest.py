"""
Pytest configuration and fixtures.
"""
from typing import Any, AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from suipay.api.main import create_app
from suipay.auth.signatures import SignatureScheme
from suipay.config import Settings
from suipay.database.connection import create_session_factory
from suipay.database.models import Base
from suipay.integrations.sui_client import EventFilter

from .factories import TEST_JWT_SECRET, TEST_PACKAGE_ID, FakeEventSource, Wallet


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        jwt_secret=TEST_JWT_SECRET,
        database_url="sqlite+aiosqlite://",
        suipay_package_id=TEST_PACKAGE_ID,
        indexer_poll_interval_seconds=0.01,
        app_name="suipay-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
    )


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, Any]:
    """In-memory SQLite engine with all tables created."""
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
    return create_session_factory(engine)


@pytest.fixture
def event_filter() -> EventFilter:
    return EventFilter(package=TEST_PACKAGE_ID, module="payment")


@pytest.fixture
def fake_source() -> FakeEventSource:
    return FakeEventSource()


@pytest.fixture
def wallet() -> Wallet:
    return Wallet(SignatureScheme.ED25519)


@pytest.fixture
def app(test_settings: Settings, engine: AsyncEngine, fake_source: FakeEventSource) -> FastAPI:
    """Application wired to SQLite and the fake event source."""
    return create_app(test_settings, engine=engine, event_source=fake_source)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, Any]:
    """Create test HTTP client."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
