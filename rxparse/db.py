"""SQLAlchemy 2.x database setup using asyncpg and pgvector.

This module defines the async engine and session factory backing the
sample store. Connection credentials come from DB_* settings.
"""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import DatabaseSettings, settings


def build_engine(config: DatabaseSettings) -> AsyncEngine:
    return create_async_engine(
        config.url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=True,
    )


engine: AsyncEngine = build_engine(settings.db)

AsyncSessionMaker = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Async session dependency.

    Usage:
        async with contextlib.asynccontextmanager(get_session)() as session:
            ...
    """

    async with AsyncSessionMaker() as session:
        yield session
