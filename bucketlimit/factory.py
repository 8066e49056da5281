"""Build a rate limiter from settings."""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bucketlimit.backends import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    RequestRateLimiter,
    SqlRateLimiter,
)
from bucketlimit.core.config import Settings, settings as default_settings
from bucketlimit.core.logging import get_logger
from bucketlimit.models import LimiterOptions

logger = get_logger(__name__)


def options_from_settings(settings: Settings) -> LimiterOptions:
    """Translate settings into limiter construction options."""
    return LimiterOptions(
        service_name=settings.service_name,
        key_prefix=settings.key_prefix,
        limit_cache_ttl=settings.limit_cache_ttl,
        limit_table=settings.limit_table,
        token_table=settings.token_table,
    )


def create_rate_limiter(
    settings: Optional[Settings] = None,
    *,
    redis_client: Optional[Any] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> RequestRateLimiter:
    """Create the limiter selected by ``settings.backend``.

    Args:
        settings: Settings to use (global settings if None)
        redis_client: Existing redis.asyncio client for the redis backend
        session_factory: Existing session factory for the sql backend

    Returns:
        A limiter ready to use. Tables for the sql backend must already
        exist (see bucketlimit.db.init_db).
    """
    settings = settings or default_settings
    options = options_from_settings(settings)

    if settings.backend == "redis":
        if redis_client is None:
            import redis.asyncio as aioredis

            redis_client = aioredis.from_url(settings.redis_url)
        logger.info("Using Redis rate limiter backend")
        return RedisRateLimiter(redis_client, options)

    if settings.backend == "sql":
        engine = None
        if session_factory is None:
            from bucketlimit.db.session import get_async_engine, get_session_factory

            engine = get_async_engine(settings.database_url)
            session_factory = get_session_factory(engine)
        logger.info("Using SQL rate limiter backend")
        return SqlRateLimiter(session_factory, options, engine=engine)

    logger.debug("Using in-memory rate limiter backend")
    return InMemoryRateLimiter(options)
