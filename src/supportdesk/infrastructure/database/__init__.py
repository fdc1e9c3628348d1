"""
Database Infrastructure
=======================

Async SQLAlchemy engine and sessions shared by the SLA and routing modules.

PostgreSQL via asyncpg in deployments, aiosqlite in tests. One engine per
process; request handlers get a session per request, the breach scan job
opens its own.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from supportdesk.config import settings
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the SLA tables and the read-only projections."""


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.debug}
    # SQLite uses a static pool; pool sizing only applies to server databases
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return options


def get_engine() -> AsyncEngine:
    """
    Raises:
        RuntimeError: If init_database() has not run
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the process engine and session factory.

    Args:
        database_url: Override for settings.database_url
    """
    global _engine, _session_maker

    # asyncpg takes ssl= where libpq URLs carry sslmode=
    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")

    _engine = create_async_engine(url, **_engine_options(url))
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


async def close_database() -> None:
    """Dispose pooled connections; safe to call when never initialized."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Session that commits on success and rolls back on error.

    Usage:
        async with get_session_context() as session:
            await build_breach_scanner(session).run_scheduled_scan()
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one transaction per request."""
    async with get_session_context() as session:
        yield session


async def ping_database() -> str:
    """Connectivity state for the health endpoint: ok, unavailable or not_initialized."""
    if _engine is None:
        return "not_initialized"
    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database ping failed", extra={"error": str(e)})
        return "unavailable"
    return "ok"


async def create_tables() -> None:
    """
    Create missing tables for local runs and tests.

    Deployed databases are migrated separately.
    """
    # Importing the model modules registers their tables on Base.metadata
    import supportdesk.infrastructure.database.models  # noqa: F401
    import supportdesk.sla.infrastructure.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
