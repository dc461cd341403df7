"""Async database engine, session factory, and lifespan management.

Uses SQLAlchemy 2.0 async with asyncpg driver for PostgreSQL.
Redis carries the record store's change notifications. It is optional at
runtime: if it is unreachable at startup the service still serves requests,
live subscribers just receive nothing.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ekklesia.config import settings

logger = logging.getLogger(__name__)

# ── Async PostgreSQL engine ──────────────────────────────────────────

engine: AsyncEngine = create_async_engine(
    settings.db.database_url,
    echo=settings.log_level == "DEBUG",
    pool_size=settings.db.pool_size,
    max_overflow=settings.db.max_overflow,
    pool_pre_ping=True,
    pool_recycle=3600,
)

# ── Session factory ──────────────────────────────────────────────────

# Rows leave the record store as dicts; nothing is read after commit.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# ── Redis client ─────────────────────────────────────────────────────

redis_client: aioredis.Redis = aioredis.from_url(
    settings.db.redis_url,
    decode_responses=True,
)


# ── Lifespan helpers ─────────────────────────────────────────────────


async def init_db() -> None:
    """Open the pool and, outside production, create missing tables.

    Production schemas are owned by the Alembic migrations.
    """
    async with engine.begin() as conn:
        from ekklesia.models import Base

        if not settings.is_production:
            await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready (%s)", settings.environment)

    try:
        await redis_client.ping()
    except RedisError as exc:
        logger.warning("Redis unreachable, change notifications disabled: %s", exc)


async def close_db() -> None:
    """Dispose database engine and Redis connections."""
    await engine.dispose()
    await redis_client.aclose()


@contextlib.asynccontextmanager
async def db_lifespan() -> AsyncGenerator[None, None]:
    """Database lifecycle for the FastAPI lifespan in `ekklesia.main`."""
    await init_db()
    try:
        yield
    finally:
        await close_db()
