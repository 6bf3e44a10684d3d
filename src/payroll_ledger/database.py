"""Database connection and session management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payroll_ledger.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async database engine."""
    url = database_url or get_settings().database_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine, if one was created."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_schema(engine: AsyncEngine) -> None:
    """Create all ledger tables (development and tests; production uses migrations)."""
    from payroll_ledger.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def acquire_advisory_lock(conn: AsyncConnection, key: str) -> bool:
    """Try to take a session-level advisory lock on ``conn``.

    Returns True if lock acquired, False if already held elsewhere.
    """
    result = await conn.execute(
        text("SELECT pg_try_advisory_lock(hashtext(:key))"),
        {"key": key},
    )
    return bool(result.scalar())


async def release_advisory_lock(conn: AsyncConnection, key: str) -> None:
    """Release an advisory lock taken with :func:`acquire_advisory_lock`."""
    await conn.execute(
        text("SELECT pg_advisory_unlock(hashtext(:key))"),
        {"key": key},
    )
