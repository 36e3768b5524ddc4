"""
Database connection and session management.
Uses asyncpg with SQLAlchemy async in production, aiosqlite in tests.
"""

import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """Get database URL without sslmode and with the async driver."""
    url = settings.database_url
    if not url:
        return ""
    # asyncpg doesn't accept sslmode as a query param
    if "?sslmode=" in url:
        url = url.split("?sslmode=")[0]
    elif "&sslmode=" in url:
        url = url.replace("&sslmode=require", "").replace("&sslmode=disable", "")
    if url.startswith("postgres://"):
        url = "postgresql+asyncpg://" + url[len("postgres://"):]
    elif url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def create_engine_if_configured() -> Optional[AsyncEngine]:
    """Create async engine only if DATABASE_URL is configured."""
    db_url = get_database_url()
    if not db_url:
        logger.warning("DATABASE_URL not configured. Database features disabled.")
        return None

    if db_url.startswith("sqlite"):
        return create_async_engine(db_url, echo=settings.debug)

    return create_async_engine(
        db_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        connect_args={"ssl": True} if settings.is_production else {},
    )


engine = create_engine_if_configured()

async_session_maker = (
    async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    if engine
    else None
)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    if not async_session_maker:
        raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    if not engine:
        logger.warning("Skipping database initialization - DATABASE_URL not configured")
        return

    # Register models on the metadata before create_all
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    if engine:
        await engine.dispose()
