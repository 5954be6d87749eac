"""
Database Infrastructure
=======================

Engine and session factory for the ticket store.

Uses SQLAlchemy 2.0 with asyncpg for PostgreSQL. A SQLite URL
(``sqlite+aiosqlite://``) works for local development and tests.
Repositories receive the session factory and open a short-lived session
per operation through ``session_scope``.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ticketing_core.config import settings
from ticketing_core.core import RepositoryException
from ticketing_core.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the users, tickets and notification tables."""
    pass


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Get the session factory handed to repositories.

    Raises:
        RuntimeError: If the database has not been initialized
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def build_engine_options(url: str, debug: bool = False) -> dict:
    """Connection pool options; SQLite gets the driver defaults."""
    options: dict[str, Any] = {"echo": debug}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return options


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the engine and session factory. Called once at startup.

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker

    # asyncpg takes ssl=, not libpq's sslmode=
    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")

    _engine = create_async_engine(url, **build_engine_options(url, settings.debug))
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("Database engine initialized", extra={"dialect": _engine.dialect.name})
    return _engine


async def close_database() -> None:
    """Dispose of pooled connections. Called at shutdown."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


@asynccontextmanager
async def session_scope(
    session_maker: async_sessionmaker[AsyncSession],
    operation: str,
    **context: Any,
) -> AsyncGenerator[AsyncSession, None]:
    """
    One unit of work: commit on success, roll back on error.

    SQLAlchemy errors are logged with ``context`` and re-raised as
    RepositoryException so callers never see driver exceptions.

    Usage:
        async with session_scope(maker, "save ticket", ticket_id=t.id) as session:
            await session.merge(model)
    """
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(
                f"Failed to {operation}",
                extra={**context, "error": str(e), "error_type": type(e).__name__}
            )
            raise RepositoryException(f"Failed to {operation}", dict(context)) from e
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """
    Create all tables that do not exist yet.

    Production deployments manage the schema with migrations.
    """
    # Register models on Base.metadata
    from ticketing_core.sla.infrastructure import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
