"""Async SQLAlchemy engine and session management.

The mirror is usually backed by a SQLite file shared between a running
bootstrap and short-lived CLI commands (``sync cancel``, ``admin jobs``).
Every SQLite connection therefore gets a busy timeout, so a second writer
waits for the lock instead of failing at once, and WAL journaling, so
readers never block the workflow's step commits.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, pool
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from github_mirror.config import DatabaseConfig, get_settings
from github_mirror.db.models import Base
from github_mirror.logging import get_logger

logger = get_logger(__name__)

# Module-level engine instance (initialized lazily)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def sqlite_pragmas(database_url: str, config: DatabaseConfig) -> list[str]:
    """PRAGMA statements to run on each new connection to ``database_url``.

    Empty for non-SQLite backends. WAL is skipped for in-memory databases,
    which cannot use it.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return []

    pragmas = [f"PRAGMA busy_timeout = {config.busy_timeout_ms}"]
    if config.wal and url.database not in (None, "", ":memory:"):
        pragmas.append("PRAGMA journal_mode = WAL")
    return pragmas


def build_engine(database_url: str, config: DatabaseConfig | None = None) -> AsyncEngine:
    """Create an engine for ``database_url`` with the connection pragmas installed."""
    config = config or DatabaseConfig()
    engine = create_async_engine(
        database_url,
        echo=config.echo,
        poolclass=pool.NullPool,  # One connection per session; SQLite locks are per connection
    )

    pragmas = sqlite_pragmas(database_url, config)
    if pragmas:

        @event.listens_for(engine.sync_engine, "connect")
        def _apply_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            try:
                for pragma in pragmas:
                    cursor.execute(pragma)
            finally:
                cursor.close()

    return engine


def get_engine() -> AsyncEngine:
    """Get or create the engine for the configured database."""
    global _engine
    if _engine is None:
        settings = get_settings()
        config = settings.database
        if settings.log_level == "DEBUG":
            config = config.model_copy(update={"echo": True})
        _engine = build_engine(settings.database_url, config)
        logger.debug("Created database engine for {}", make_url(settings.database_url))
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory.

    The workflow orchestrator opens one session per step from this
    factory so each step commits in its own transaction.
    """
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session that commits on success.

    Usage:
        async with get_session() as session:
            result = await session.execute(select(SyncJob))
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> list[str]:
    """Create any missing tables and return the names of all mirror tables.

    Commands call this so a fresh database file works without running
    Alembic first. Existing tables are left untouched.
    """
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return list(Base.metadata.tables)


async def journal_mode() -> str | None:
    """The journal mode SQLite reports for a fresh connection, or None for other backends."""
    engine = get_engine()
    if engine.dialect.name != "sqlite":
        return None
    async with engine.connect() as conn:
        result = await conn.exec_driver_sql("PRAGMA journal_mode")
        return str(result.scalar()).lower()


async def dispose_engine() -> None:
    """Dispose the engine and close all connections."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
