"""
Database layer — async SQLAlchemy 2.0 (asyncpg in production, aiosqlite in tests).

Provides:
    • Database: owns the async engine and session factory
    • Base model for ORM entities
    • Explicit lifecycle (create tables, ping, dispose)

Usage:
    from backend.app.core.database import Database

    db = Database(settings.DATABASE_URL)
    await db.create_all()
    async with db.session() as session:
        await session.execute(select(AlertRecord))
    await db.dispose()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from backend.app.core.config import Settings

logger = logging.getLogger(__name__)


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def _engine_options(url: str, config: Optional[Settings]) -> Dict[str, Any]:
    options: Dict[str, Any] = {"future": True}
    if config is not None:
        options["echo"] = config.DATABASE_ECHO

    if url.startswith("sqlite"):
        # One shared connection keeps an in-memory database alive across sessions
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            options["poolclass"] = StaticPool
    elif config is not None:
        options["pool_size"] = config.DATABASE_POOL_SIZE
        options["max_overflow"] = config.DATABASE_MAX_OVERFLOW
        options["pool_pre_ping"] = True
    return options


class Database:
    """Engine + session factory, created by the application's composition root."""

    def __init__(self, url: str, config: Optional[Settings] = None) -> None:
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **_engine_options(url, config))
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session; commit on success, roll back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create all tables (dev/test only — use migrations in production)."""
        # Register ORM models on Base.metadata
        from backend.app.alerts import orm  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialised")

    async def ping(self) -> None:
        """Round-trip a trivial statement; raises on connectivity failure."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        """Dispose engine connections."""
        await self.engine.dispose()
        logger.info("Database connections closed")

    @property
    def display_url(self) -> str:
        """URL with credentials stripped, safe to log."""
        return self.url.split("@")[-1] if "@" in self.url else self.url
