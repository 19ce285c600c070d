"""
Redis Configuration

Async Redis client used by the rate limiter.
"""

from redis.asyncio import Redis, from_url

from letterflow.core.config import settings

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Initialize the Redis connection.

    Call this on application startup.
    """
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    return redis_client


async def get_redis() -> Redis | None:
    """
    Get the Redis client instance.

    Returns None if Redis was not initialized; callers fall back to
    process-local behaviour.
    """
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
