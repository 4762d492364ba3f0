"""Async database engine and session management.

Provides:
    - _get_engine: The SQLAlchemy async engine (lazy singleton).
    - get_async_session: FastAPI dependency that yields a session per request.
    - init_db / close_db: Lifecycle hooks for FastAPI's lifespan and the simulation.

PostgreSQL (asyncpg) is the default target. A ``sqlite+aiosqlite`` URL is
also accepted for local runs; connection-pool settings are skipped for it.

Usage in FastAPI:
    @router.get("/events")
    async def list_events(session: AsyncSession = Depends(get_async_session)):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from title_exchange.config import get_settings
from title_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger(__name__)

# Module-level singletons (initialized in init_db)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_kwargs(database_url: str) -> dict[str, Any]:
    settings = get_settings()
    kwargs: dict[str, Any] = {"echo": settings.db_echo_sql}
    if not database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
        )
    return kwargs


def _get_engine(database_url: str | None = None) -> AsyncEngine:
    """Get or create the async engine (lazy singleton)."""
    global _engine
    if _engine is None:
        url = database_url or get_settings().database_url
        _engine = create_async_engine(url, **_engine_kwargs(url))
        logger.info("database.engine_created", dialect=_engine.dialect.name)
    return _engine


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (lazy singleton)."""
    global _session_factory
    if _session_factory is None:
        engine = _get_engine()
        _session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    The session is automatically committed on success or rolled back on error.
    """
    factory = _get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(database_url: str | None = None, create_tables: bool | None = None) -> None:
    """Initialize the database engine and create tables if they don't exist.

    Args:
        database_url: Override for settings.database_url (e.g. a SQLite file).
        create_tables: Force table creation on or off. Defaults to development mode.
    """
    from title_exchange.infrastructure.database.orm_models import Base

    engine = _get_engine(database_url)
    if create_tables is None:
        create_tables = get_settings().is_development

    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("database.tables_created")
    else:
        logger.info("database.skipping_create_all", reason="not in development mode")


async def close_db() -> None:
    """Dispose of the database engine. Called on shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
        _engine = None
        _session_factory = None
