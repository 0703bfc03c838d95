"""Tests for database engine and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text

from devcms.database import create_engine, ensure_sqlite_directory

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

    from devcms.config import Settings


class TestDatabase:
    async def test_engine_connects(self, db_engine: AsyncEngine) -> None:
        async with db_engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1

    async def test_session_works(self, db_session: AsyncSession) -> None:
        result = await db_session.execute(text("SELECT 42"))
        assert result.scalar() == 42

    async def test_create_engine_returns_session_factory(self, test_settings: Settings) -> None:
        engine, session_factory = create_engine(test_settings)
        try:
            async with session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                assert result.scalar() == 1
            assert session_factory.kw["expire_on_commit"] is False
        finally:
            await engine.dispose()


class TestEnsureSqliteDirectory:
    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "db" / "devcms.db"
        ensure_sqlite_directory(f"sqlite+aiosqlite:///{db_path}")
        assert db_path.parent.is_dir()

    def test_memory_database_is_ignored(self) -> None:
        ensure_sqlite_directory("sqlite+aiosqlite:///:memory:")

    def test_non_sqlite_url_is_ignored(self, tmp_path: Path) -> None:
        ensure_sqlite_directory(f"postgresql+asyncpg://user@host/{tmp_path}/db")
        assert list(tmp_path.iterdir()) == []
