"""Async sessions: one per HTTP request, one per Celery task run."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking_core.database.connection import check_connection, close_engine, get_engine

logger = logging.getLogger(__name__)

_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        # Rows stay readable after commit so services can serialize them
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Unit of work: commit when the block exits cleanly, roll back otherwise.

    Usage:
        async with get_session_context() as session:
            ...
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            if isinstance(e, SQLAlchemyError):
                logger.error(f"Rolled back after database error: {e}")
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency; the request handler's work commits as one unit."""
    async with get_session_context() as session:
        yield session


async def init_db() -> None:
    """Log whether the database answers; startup continues either way."""
    if await check_connection():
        logger.info("Database reachable")
    else:
        logger.warning("Database not reachable at startup; /ready will report it")


async def close_db() -> None:
    global _session_factory
    await close_engine()
    _session_factory = None
    logger.info("Database connections closed")
