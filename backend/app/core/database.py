"""
Database layer — async SQLAlchemy 2.0 (asyncpg in production, aiosqlite in tests).

Provides:
    • ``Database``: engine + session factory whose lifecycle is owned by the
      application lifespan (created at startup, disposed at shutdown)
    • Transaction helper used by the entity stores
    • Base model for ORM entities

Usage:
    from backend.app.core.database import Base, Database

    db = Database("sqlite+aiosqlite:///:memory:")
    await db.create_all()
    async with db.transaction() as session:
        await session.execute(...)
    await db.dispose()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from backend.app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def _engine_for(url: str, config: Settings) -> AsyncEngine:
    if url.startswith("sqlite"):
        # One shared connection so an in-memory database survives across sessions
        return create_async_engine(
            url,
            echo=config.DATABASE_ECHO,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(
        url,
        pool_size=config.DATABASE_POOL_SIZE,
        max_overflow=config.DATABASE_MAX_OVERFLOW,
        echo=config.DATABASE_ECHO,
        pool_pre_ping=True,
    )


class Database:
    """Async engine and session factory for one application instance."""

    def __init__(self, url: Optional[str] = None, *, config: Optional[Settings] = None):
        config = config or default_settings
        self.url = url or config.DATABASE_URL
        self.engine = _engine_for(self.url, config)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session inside a transaction; commit on success, roll back on error."""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def create_all(self) -> None:
        """Create all tables (dev/test only — use migrations in production)."""
        # Register every table with Base.metadata before creating
        from backend.app.alerts import store as _alerts  # noqa: F401
        from backend.app.records import reports as _reports  # noqa: F401
        from backend.app.records import resources as _resources  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialised")

    async def ping(self) -> None:
        """Round-trip a trivial query; raises on connectivity failure."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        """Dispose engine connections."""
        await self.engine.dispose()
        logger.info("Database connections closed")

    @property
    def display_url(self) -> str:
        """URL without credentials, for health output and logs."""
        return self.url.split("@")[-1]
