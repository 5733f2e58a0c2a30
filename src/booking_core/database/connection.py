"""Async engine for the booking database (PostgreSQL, or SQLite for local runs)."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from booking_core.config import get_settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None

# Sync-driver URLs from the environment are served through asyncpg
_ASYNC_DRIVER_REWRITES = (
    ("postgresql+psycopg2://", "postgresql+asyncpg://"),
    ("postgresql://", "postgresql+asyncpg://"),
)


def get_database_url() -> str:
    """The configured URL with an async driver."""
    url = get_settings().database.url
    for prefix, replacement in _ASYNC_DRIVER_REWRITES:
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def engine_options(url: str) -> Dict[str, Any]:
    """Engine keyword arguments for `url`. SQLite gets no pool sizing."""
    db = get_settings().database
    options: Dict[str, Any] = {"echo": db.echo}
    if url.startswith("sqlite"):
        return options

    options.update(
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        pool_pre_ping=True,
    )
    return options


def create_engine() -> AsyncEngine:
    url = get_database_url()
    options = engine_options(url)
    engine = create_async_engine(url, **options)
    logger.info(
        f"Database engine created for {engine.dialect.name} "
        f"(pool_size={options.get('pool_size', 'default')})"
    )
    return engine


def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


async def close_engine() -> None:
    """Dispose of the pool. The next `get_engine()` builds a fresh one."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database engine closed")


async def check_connection() -> bool:
    """Round trip `SELECT 1`; False instead of raising when the database is down."""
    try:
        async with get_engine().connect() as conn:
            return (await conn.execute(text("SELECT 1"))).scalar() == 1
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection check failed: {e}")
        return False
