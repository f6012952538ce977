"""Database connection management.

Environment Variables:
    POSTGRES_URI: PostgreSQL connection string
    DATABASE_URL: Fallback connection string
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: AsyncEngine | None = None


def get_database_uri() -> str | None:
    """Get the database URI, preferring POSTGRES_URI."""
    uri = os.getenv("POSTGRES_URI") or os.getenv("DATABASE_URL")
    if not uri:
        return None
    return _ensure_async_driver(uri)


def _ensure_async_driver(uri: str) -> str:
    if uri.startswith("postgresql://"):
        return uri.replace("postgresql://", "postgresql+asyncpg://", 1)
    if uri.startswith("postgres://"):
        return uri.replace("postgres://", "postgresql+asyncpg://", 1)
    return uri


def get_engine() -> AsyncEngine:
    """Get or create the async engine."""
    global _engine
    if _engine is None:
        uri = get_database_uri()
        if not uri:
            raise RuntimeError(
                "Database URI not configured. Set POSTGRES_URI environment variable."
            )
        _engine = create_async_engine(uri, pool_pre_ping=True)
    return _engine


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session scoped to one unit of work; commits on success, rolls back on error."""
    maker = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def session_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapper around ``get_session``."""
    async with get_session() as session:
        yield session
