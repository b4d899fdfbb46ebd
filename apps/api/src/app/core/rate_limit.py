"""
Rate Limiting

Sliding-window request limits for upload and registrar endpoints.

Uses the shared Redis client (sorted set per key) when it is available and
falls back to a per-process memory window otherwise. The memory fallback
does not coordinate across server instances.
"""

import logging
import time

from fastapi import HTTPException, status

from app.core import redis as redis_module

logger = logging.getLogger(__name__)

# {key: [timestamp, ...]}
_memory_store: dict[str, list[float]] = {}
# {key: time at which its window is empty}
_memory_expiry: dict[str, float] = {}


class RateLimitExceeded(HTTPException):
    """HTTP 429 raised when a caller exceeds its window."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_redis(client, key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, now - window_seconds)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)
    results = await pipe.execute()

    return results[1] < limit


def _prune_memory(now: float) -> None:
    expired = [key for key, expires_at in _memory_expiry.items() if expires_at <= now]
    for key in expired:
        _memory_store.pop(key, None)
        del _memory_expiry[key]


def _check_memory(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    _prune_memory(now)
    window = [ts for ts in _memory_store.get(key, []) if ts > now - window_seconds]

    if len(window) >= limit:
        if window:
            _memory_store[key] = window
        return False

    window.append(now)
    _memory_store[key] = window
    _memory_expiry[key] = now + window_seconds
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Record a request for key and report whether it is within the limit.

    Args:
        key: Rate limit key, e.g. "upload:<actor>:<person_id>"
        limit: Maximum requests per window
        window_seconds: Window length

    Returns:
        True if the request is allowed
    """
    client = redis_module.redis_client
    if client is not None:
        try:
            return await _check_redis(client, f"rate_limit:{key}", limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory window: {e}")

    return _check_memory(key, limit, window_seconds)


async def enforce_rate_limit(key: str, limit: int, window_seconds: int) -> None:
    """
    Raise RateLimitExceeded when key is over its limit.
    """
    if not await check_rate_limit(key, limit, window_seconds):
        logger.warning(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
        raise RateLimitExceeded(limit, window_seconds)


__all__ = [
    "RateLimitExceeded",
    "check_rate_limit",
    "enforce_rate_limit",
]
