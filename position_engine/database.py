"""
Position Engine - Database Engine.

============================================================
PURPOSE
============================================================
Async SQLAlchemy engine and session factory for the position
repository.

No module-level engine: callers build one from a DatabaseConfig
and own its lifetime.

============================================================
"""

import logging
from typing import Tuple

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .config import DatabaseConfig
from .models import Base


logger = logging.getLogger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.endswith("://"))


def create_engine_from_config(config: DatabaseConfig) -> AsyncEngine:
    """
    Create an async engine.

    In-memory SQLite databases use a StaticPool so every session
    sees the same connection, hence the same data.
    """
    logger.info(f"Creating database engine for: {config.url.split('@')[-1]}")

    kwargs = {"echo": config.echo}
    if _is_memory_sqlite(config.url):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_async_engine(config.url, **kwargs)

    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def create_session_factory(
    config: DatabaseConfig,
) -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Create engine and session factory.

    Returns:
        (engine, session factory)
    """
    engine = create_engine_from_config(config)
    factory = async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )
    return engine, factory


async def init_models(engine: AsyncEngine) -> None:
    """Create position tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Position tables initialized")
