"""
Database Configuration
======================

SQLAlchemy async database setup with connection pooling and session management.
Shared by the API process and the Celery workers.
"""

from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import NullPool

from bulk_export.core.config import settings


# Pooled asyncpg connections must not outlive the event loop that opened them;
# tests disable pooling and workers dispose the pool after each unit.
_engine_kwargs = dict(
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

if settings.APP_ENV == "test":
    _engine_kwargs["poolclass"] = NullPool
else:
    _engine_kwargs["pool_size"] = 10
    _engine_kwargs["max_overflow"] = 20

engine: AsyncEngine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs)

# Session factory
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def create_db_and_tables() -> None:
    """
    Create database tables if they don't exist.

    Note: In production, use Alembic migrations instead.
    This is primarily for development convenience.
    """
    from bulk_export.models.base import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_database() -> bool:
    """Return True if the database answers a trivial query."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Creates a new database session for each request and ensures
    proper cleanup after the request is complete.

    Yields:
        AsyncSession: Database session for the request
    """
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
