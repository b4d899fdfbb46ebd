"""
Redis Connection

Shared async Redis client used for live event broadcast and rate limiting.
Redis is optional outside production: callers must handle a missing client.
"""

from redis.asyncio import Redis, from_url

from app.core.config import settings

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Open the shared Redis connection and verify it with a PING.

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
    """FastAPI dependency returning the shared client, or None when unavailable."""
    return redis_client


def is_redis_available() -> bool:
    return redis_client is not None


async def redis_health() -> str:
    """Return "connected", "not initialized" or the connection error text."""
    if redis_client is None:
        return "not initialized"
    try:
        await redis_client.ping()
    except Exception as e:
        return f"error: {e}"
    return "connected"


async def close_redis() -> None:
    """Close the shared connection."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
