"""Database configuration and session management.

Provides async SQLAlchemy engine and session factory.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from fulfillment.infrastructure.config import Settings

# Base class for models
Base = declarative_base()


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the durable store.

    Args:
        settings: Application settings.

    Returns:
        AsyncEngine bound to settings.database_url.
    """
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory used by units of work."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
