"""Database configuration and async session management."""

import logging
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import settings
from .exceptions import StorageFailure

logger = logging.getLogger(__name__)


def configure_sqlite_locking(engine: AsyncEngine) -> None:
    """
    Make SQLite open every transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, which lets two connections
    both hold read locks and then deadlock on upgrade. Taking the write lock
    up front makes concurrent writers queue on the busy timeout instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _engine_options(database_url: str) -> dict:
    options: dict = {"echo": settings.debug and settings.log_level == "DEBUG", "future": True}
    if "sqlite" in database_url:
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url:
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
    return options


# Create async engine
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))
if "sqlite" in settings.database_url:
    configure_sqlite_locking(engine)

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function that yields database sessions.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Alias for FastAPI dependency injection
get_db = get_async_session


async def commit_or_rollback(session: AsyncSession, operation: str) -> None:
    """
    Commit the session's unit of work, rolling everything back on failure.

    Raises:
        StorageFailure: If the database rejected the commit
    """
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(
            "Commit failed, transaction rolled back",
            extra={"operation": operation, "error": str(e)},
            exc_info=True
        )
        raise StorageFailure(operation=operation) from e


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
