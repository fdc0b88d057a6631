"""
Database initialization and connection management.

This module provides functions for:
1. Creating and disposing the global async engine
2. Handing out sessions to request handlers
3. Running a block of writes as one unit of work
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from jlpt_backend.common.error_handling import DatabaseError
from jlpt_backend.common.logger import app_logger

logger = app_logger.getChild("database.init_db")

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Get the global async engine instance."""
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _engine


def get_session_factory() -> sessionmaker:
    """Get the session factory bound to the global engine."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _session_factory


def engine_options(
    database_url: str,
    pool_size: int,
    max_overflow: int,
    pool_timeout: int,
    pool_recycle: int
) -> Dict[str, Any]:
    """Pool options for ``database_url``; SQLite gets none."""
    if make_url(database_url).get_backend_name() == "sqlite":
        return {}
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
        "pool_recycle": pool_recycle,
        "pool_pre_ping": True,
    }


async def initialize_database(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> AsyncEngine:
    """
    Initialize the async database engine and session factory.

    Args:
        database_url: Database connection URL
        echo: Whether to echo SQL statements
        pool_size: Connection pool size
        max_overflow: Maximum number of connections to allow above pool_size
        pool_timeout: Timeout for getting a connection from the pool
        pool_recycle: Seconds after which pooled connections are recycled

    Returns:
        AsyncEngine instance
    """
    global _engine, _session_factory

    backend_name = make_url(database_url).get_backend_name()
    logger.info(f"Initializing {backend_name} database (pool size: {pool_size})")

    try:
        _engine = create_async_engine(
            database_url,
            echo=echo,
            **engine_options(database_url, pool_size, max_overflow, pool_timeout, pool_recycle)
        )
        _session_factory = sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize async database: {e}")
        raise DatabaseError("Failed to initialize database", cause=e)

    logger.info("Database engine initialized successfully")
    return _engine


async def close_database() -> None:
    """Dispose the engine and release every pooled connection."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine closed successfully")


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit everything written inside the block, or nothing.

    Any exception rolls the session back and propagates unchanged.
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def get_async_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency that provides an async database session.

    The request runs as a single unit of work: it commits when the handler
    returns and rolls back when it raises.
    """
    async with get_session_factory()() as session:
        async with unit_of_work(session):
            yield session
