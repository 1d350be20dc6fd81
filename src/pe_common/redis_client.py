"""Shared Redis connection for the notification backend.

Only RedisPublisher and the startup probe touch it. Balances and locks never
live here; those are PostgreSQL rows plus the in-process lock table.
"""

import logging

import redis.asyncio as aioredis

from config.settings import settings

logger = logging.getLogger(__name__)

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Lazily create the pooled client on first use."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            health_check_interval=30,
        )
    return _redis_pool


async def ping_redis() -> None:
    """Fail fast at startup when Redis carries notifications but is unreachable."""
    await (await get_redis()).ping()
    logger.info("Redis reachable at %s", settings.REDIS_URL.rsplit("@", 1)[-1])


async def close_redis() -> None:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
