"""Async database engine and session management."""

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from property_workflows.app.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all workflow records."""
    pass


def is_sqlite(database_url: str) -> bool:
    return "sqlite" in database_url


def build_engine(database_url: str) -> AsyncEngine:
    """Engine with driver-specific options for ``database_url``."""
    kwargs = {"echo": False}
    if is_sqlite(database_url):
        # Wait up to 30s for the write lock; transitions are short writes.
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        kwargs["pool_size"] = 5
        kwargs["max_overflow"] = 10
    return create_async_engine(database_url, **kwargs)


settings = get_settings()

engine = build_engine(settings.database_url)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: yield an async database session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create the workflow tables (for local dev and tests).

    File-backed SQLite databases are switched to WAL so report reads do not
    block on a transition being written.
    """
    import property_workflows.domain.models  # noqa: F401

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    url = bind.url
    if is_sqlite(url.drivername) and url.database not in (None, "", ":memory:"):
        async with bind.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(text("PRAGMA busy_timeout=30000"))
        logger.info("SQLite database %s ready (WAL)", url.database)
