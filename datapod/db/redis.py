"""Shared Redis connection pool.

The dispatch queue, step records and executor semaphores all go through this
client. Each process names its connection (``datapod-api``, ``datapod-worker``)
so ``CLIENT LIST`` shows which side holds a lease.
"""

import redis.asyncio as redis
import structlog

from datapod.core.config import get_settings

logger = structlog.get_logger(__name__)

_redis: redis.Redis | None = None


async def init_redis(url: str | None = None, client_name: str = "datapod-api") -> None:
    """Initialize the shared Redis connection pool."""
    global _redis

    if _redis is not None:
        return

    settings = get_settings()
    redis_url = url or settings.redis_url

    _redis = redis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        client_name=client_name,
        # Workers idle on the queue between polls; detect dead sockets before reuse
        health_check_interval=settings.redis_health_check_interval_seconds,
        max_connections=settings.redis_max_connections,
    )

    # Verify connectivity
    await _redis.ping()
    logger.info("redis_connected", client_name=client_name, max_connections=settings.redis_max_connections)


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    """Return the shared Redis client.

    Raises RuntimeError if init_redis() has not been called.
    """
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
