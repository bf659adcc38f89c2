"""
Database engine, session factory, and declarative base for the audit store.

Uses async SQLAlchemy 2.0 (asyncpg in production, aiosqlite for tests/dev).
The engine is created explicitly and handed to whoever needs it.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from decisiongate.config import Settings, settings as default_settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for audit tables."""

    pass


def create_engine_from_settings(settings: Optional[Settings] = None) -> AsyncEngine:
    """Create the async database engine for the configured URL."""
    settings = settings or default_settings
    url = settings.async_database_url
    kwargs = {"echo": settings.debug}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=10, max_overflow=20, pool_recycle=3600)
    engine = create_async_engine(url, **kwargs)
    logger.info("audit_database_engine_created", db=url.split("@")[-1] if "@" in url else "sqlite")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create audit tables if missing (dev/test; production manages schema itself)."""
    import decisiongate.audit.models  # noqa: F401  registers tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("audit_tables_created")
