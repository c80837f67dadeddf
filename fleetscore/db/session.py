"""
Database Session Management
===========================

Async SQLAlchemy engine and session factory.

Author: Fleet Platform Team
Version: 1.0.0
"""

import logging
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fleetscore.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("violations", "driver_scores")


def create_engine(config: Optional[Settings] = None) -> AsyncEngine:
    """
    Create the async engine with connection pooling.

    Args:
        config: Settings to read the DSN from (defaults to global settings)
    """
    config = config or default_settings
    return create_async_engine(
        config.postgres_async_dsn,
        echo=config.debug,
        pool_pre_ping=True,
        pool_size=config.postgres_pool_size,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the repositories."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Check that the database is reachable and migrated.

    Schema is owned by the alembic migrations; a worker started against
    an unmigrated database fails here rather than on its first write.

    Raises:
        RuntimeError: A scoring table is missing
    """
    url = engine.url.render_as_string(hide_password=True)
    logger.info("Connecting to %s", url)

    async with engine.connect() as conn:
        present = await conn.run_sync(
            lambda sync_conn: {
                name for name in REQUIRED_TABLES if inspect(sync_conn).has_table(name)
            }
        )

    missing = sorted(set(REQUIRED_TABLES) - present)
    if missing:
        raise RuntimeError(
            f"Tables {', '.join(missing)} not found; run 'alembic upgrade head' first"
        )
    logger.info("Database ready (%s)", url)


async def close_db(engine: AsyncEngine) -> None:
    """Dispose of the connection pool on worker shutdown."""
    await engine.dispose()
    logger.info("Database pool disposed")


__all__ = [
    "REQUIRED_TABLES",
    "create_engine",
    "create_session_factory",
    "init_db",
    "close_db",
    "AsyncSession",
]
