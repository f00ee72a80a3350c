"""
Database configuration and session management.
Uses SQLAlchemy 2.0 asyncio extension.

The engine is created lazily so importing this module never requires the
database driver. jela_core installs its own session factory (row filters and
save interceptor attached) at startup through configure_session_factory().
"""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from jela_shared.config.settings import settings
from jela_shared.utils.exceptions import ConfigurationError


@lru_cache
def get_engine() -> AsyncEngine:
    """Get cached engine for the configured DATABASE_URL."""
    return create_async_engine(
        settings.database_url,
        pool_pre_ping=True,  # Verify connections before using
        echo=settings.database_echo,
    )


_session_factory: async_sessionmaker[AsyncSession] | None = None


def configure_session_factory(factory: async_sessionmaker[AsyncSession]) -> None:
    """Install the session factory used by get_db()."""
    global _session_factory
    _session_factory = factory


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get the configured session factory.

    There is no fallback: a plain session would run without row filters
    and would physically delete soft-deletable rows.

    Raises:
        ConfigurationError: No factory was installed. create_app() installs
            one at startup, other callers use configure_session_factory().
    """
    if _session_factory is None:
        raise ConfigurationError("No session factory configured")
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    Usage:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...

    The session is automatically closed after the request completes.
    """
    async with get_session_factory()() as db:
        yield db


async def safe_commit(db: AsyncSession) -> None:
    """
    Commit with automatic rollback on failure.

    Raises the original exception after rolling back. Cancellation is
    treated the same way so a cancelled commit never leaves a half-open
    transaction behind.
    """
    try:
        await db.commit()
    except BaseException:
        await db.rollback()
        raise
