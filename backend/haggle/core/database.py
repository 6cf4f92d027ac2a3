"""
Database utilities and connection management.

WHAT: Async SQLAlchemy engine and session factory for the durable store
WHY: Store calls are suspension points of the event loop, never blocking it
HOW: SQLAlchemy 2.x asyncio engine (aiosqlite by default) with WAL mode on SQLite
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from ..utils.logger import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM rows."""

    pass


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return _is_sqlite(url) and (":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"))


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    In-memory SQLite shares one connection (StaticPool) so every session sees
    the same database; file-backed SQLite gets its data directory created.
    """
    kwargs = {"echo": echo}
    if _is_sqlite(url):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(url):
            kwargs["poolclass"] = StaticPool
        else:
            db_path = url.split(":///", 1)[-1]
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(url, **kwargs)

    if _is_sqlite(url):
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """Enable WAL mode and FK constraints."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to an engine."""
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """
    Context manager for a database session.

    Usage:
        async with session_scope(factory) as db:
            db.add(row)

    Commits on success, rolls back and re-raises on error.
    """
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def ping_database(engine: AsyncEngine) -> dict:
    """
    Check database connectivity.

    Returns:
        Dict with status and info
    """
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.fetchone()

        return {
            "available": True,
            "url": engine.url.render_as_string(hide_password=True),
            "error": None
        }
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return {
            "available": False,
            "url": engine.url.render_as_string(hide_password=True),
            "error": str(e)
        }


async def init_db(engine: AsyncEngine):
    """Create all tables."""
    # Import rows so they register on Base.metadata
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")


async def close_db(engine: AsyncEngine):
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connections closed")

