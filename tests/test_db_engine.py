"""Tests for database engine and session management."""

from unittest.mock import patch

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from github_mirror.config import DatabaseConfig, get_settings
from github_mirror.db import engine as engine_module
from github_mirror.db.models import Repository, SyncJob


class TestDatabaseEngine:
    """Tests for async SQLAlchemy engine operations."""

    async def test_create_tables(self, test_engine):
        """Test that all tables are created successfully."""
        async with test_engine.connect() as conn:
            result = await conn.execute(
                text("SELECT name FROM sqlite_master WHERE type='table'")
            )
            tables = {row[0] for row in result.fetchall()}

        assert {
            "repositories",
            "branches",
            "pull_requests",
            "issues",
            "commits",
            "check_runs",
            "workflow_runs",
            "workflow_jobs",
            "pr_file_syncs",
            "sync_jobs",
            "workflow_instances",
            "workflow_steps",
        } <= tables

    async def test_session_commits_on_success(self, test_engine):
        """Test that committed rows are visible from a new session."""
        session_factory = async_sessionmaker(
            test_engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        async with session_factory() as session:
            session.add(Repository(id=42, owner="acme", name="widgets", full_name="acme/widgets"))
            await session.commit()

        async with session_factory() as session:
            result = await session.get(Repository, 42)
            assert result is not None
            assert result.full_name == "acme/widgets"

    async def test_session_rollbacks_on_error(self, test_engine):
        """Test that uncommitted rows are discarded."""
        session_factory = async_sessionmaker(
            test_engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        with pytest.raises(ValueError):
            async with session_factory() as session:
                session.add(SyncJob(lock_key="rollback", job_type="bootstrap", trigger_reason="t"))
                await session.flush()
                raise ValueError("Simulated error")

        async with session_factory() as session:
            result = await session.execute(
                text("SELECT COUNT(*) FROM sync_jobs WHERE lock_key = 'rollback'")
            )
            assert result.scalar() == 0


class TestModuleEngine:
    """Tests for the lazily created module-level engine."""

    @pytest.fixture
    async def fresh_engine(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")
        get_settings.cache_clear()
        with (
            patch.object(engine_module, "_engine", None),
            patch.object(engine_module, "_async_session_factory", None),
        ):
            yield
            await engine_module.dispose_engine()

    async def test_engine_and_factory_are_cached(self, fresh_engine):
        assert engine_module.get_engine() is engine_module.get_engine()
        assert engine_module.get_session_factory() is engine_module.get_session_factory()

    async def test_get_session_commits(self, fresh_engine):
        await engine_module.create_tables()

        async with engine_module.get_session() as session:
            session.add(SyncJob(lock_key="k1", job_type="bootstrap", trigger_reason="bootstrap"))

        async with engine_module.get_session() as session:
            result = await session.execute(text("SELECT lock_key FROM sync_jobs"))
            assert [row[0] for row in result] == ["k1"]

    async def test_get_session_rolls_back_on_error(self, fresh_engine):
        await engine_module.create_tables()

        with pytest.raises(RuntimeError):
            async with engine_module.get_session() as session:
                session.add(SyncJob(lock_key="k1", job_type="bootstrap", trigger_reason="x"))
                await session.flush()
                raise RuntimeError("boom")

        async with engine_module.get_session() as session:
            result = await session.execute(text("SELECT COUNT(*) FROM sync_jobs"))
            assert result.scalar() == 0

    async def test_dispose_engine_resets_state(self, fresh_engine):
        engine_module.get_engine()

        await engine_module.dispose_engine()

        assert engine_module._engine is None
        assert engine_module._async_session_factory is None

    async def test_create_tables_returns_table_names(self, fresh_engine):
        tables = await engine_module.create_tables()

        assert "sync_jobs" in tables
        assert "workflow_instances" in tables

    async def test_sqlite_connections_get_busy_timeout_and_wal(self, fresh_engine):
        async with engine_module.get_engine().connect() as conn:
            busy_timeout = (await conn.exec_driver_sql("PRAGMA busy_timeout")).scalar()

        assert busy_timeout == 5_000
        assert await engine_module.journal_mode() == "wal"

    async def test_connection_options_from_settings(self, fresh_engine, monkeypatch):
        monkeypatch.setenv("DATABASE__BUSY_TIMEOUT_MS", "250")
        monkeypatch.setenv("DATABASE__WAL", "false")
        get_settings.cache_clear()

        async with engine_module.get_engine().connect() as conn:
            busy_timeout = (await conn.exec_driver_sql("PRAGMA busy_timeout")).scalar()

        assert busy_timeout == 250
        assert await engine_module.journal_mode() == "delete"


class TestSqlitePragmas:
    def test_file_database(self):
        assert engine_module.sqlite_pragmas(
            "sqlite+aiosqlite:///./mirror.db", DatabaseConfig(busy_timeout_ms=100)
        ) == ["PRAGMA busy_timeout = 100", "PRAGMA journal_mode = WAL"]

    def test_wal_disabled(self):
        assert engine_module.sqlite_pragmas(
            "sqlite+aiosqlite:///./mirror.db", DatabaseConfig(wal=False)
        ) == ["PRAGMA busy_timeout = 5000"]

    def test_memory_database_skips_wal(self):
        assert engine_module.sqlite_pragmas("sqlite+aiosqlite:///:memory:", DatabaseConfig()) == [
            "PRAGMA busy_timeout = 5000"
        ]

    def test_other_backends_untouched(self):
        assert engine_module.sqlite_pragmas(
            "postgresql+asyncpg://mirror@localhost/mirror", DatabaseConfig()
        ) == []
