"""Shared fixtures: in-memory database, settings, clock and an HTTP client."""

from __future__ import annotations

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import itumy.models  # noqa: F401
from itumy.api.dependencies import get_clock
from itumy.config import Settings, get_settings
from itumy.db.session import get_session_dependency
from tests.fakes import FakeClock

TEST_SESSION_SECRET = "test-session-secret"


@pytest.fixture
def settings() -> Settings:
    """Test settings: fast bcrypt, no background sweeper."""
    return Settings(
        database={"url": "sqlite+aiosqlite:///:memory:"},
        security={"session_secret": TEST_SESSION_SECRET, "bcrypt_rounds": 4},
        sweeper={"enabled": False},
        logging={"level": "WARNING", "json_logs": False},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def session_factory():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(session_factory, settings: Settings, clock: FakeClock):
    """Application wired to the test database, settings and clock."""
    from itumy.main import create_app

    application = create_app()

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_session_dependency] = override_session
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_clock] = lambda: clock
    application.state.session_secret = TEST_SESSION_SECRET
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
