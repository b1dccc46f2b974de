"""Pytest configuration and shared fixtures.

Usage Guide:
- For ORM/repository tests: use db_session and the model factories in tests.factories
- For workflow tests: use session_factory (the orchestrator opens its own sessions)
- For overlapping sessions (concurrent starts, cross-process cancel): use file_session_factory
- For GitHub API payloads: use the dict factories in tests.factories
"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from github_mirror.config import get_settings
from github_mirror.db.engine import build_engine
from github_mirror.db.models import Base

# -----------------------------------------------------------------------------
# Test Timeline Constants
#
# A consistent "test epoch" for deterministic date matching across tests.
# -----------------------------------------------------------------------------

JAN_15 = datetime(2024, 1, 15, 10, 0, 0, tzinfo=UTC)
JAN_16 = datetime(2024, 1, 16, 14, 0, 0, tzinfo=UTC)

# ISO 8601 strings (for GitHub API mocks)
JAN_15_ISO = "2024-01-15T10:00:00Z"
JAN_16_ISO = "2024-01-16T14:00:00Z"
JAN_16_LATE_ISO = "2024-01-16T15:30:00Z"


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Make every test see a freshly built Settings object."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
async def test_engine():
    """Create an in-memory SQLite engine for tests.

    Each test gets a fresh database with all tables created.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine, configured like the app's."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    """Create an async session with auto-rollback.

    Changes are rolled back after each test to ensure isolation.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def file_session_factory(
    tmp_path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory on a SQLite file, built like the app's engine.

    Use this when sessions overlap (concurrent starts, a second orchestrator);
    each session gets its own connection.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'mirror.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()
