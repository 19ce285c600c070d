"""
Rate Limiting Module

Sliding-window rate limiting for API endpoints, backed by Redis with an
in-memory fallback when Redis is unavailable.

Applied to:
- Recipient token endpoints (slows down token guessing)
- Upload and submission endpoints (limits storage abuse)
- The student "send" endpoint (prevents email bombing a recipient)
"""

import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

from fastapi import HTTPException, Request, status

from letterflow.core.redis import get_redis

logger = logging.getLogger(__name__)

# In-memory fallback storage: {key: (window_seconds, [(timestamp, count), ...])}
_memory_store: dict[str, tuple[int, list[tuple[float, int]]]] = {}
_last_sweep = 0.0

MEMORY_SWEEP_INTERVAL_SECONDS = 60


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

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


async def _check_rate_limit_redis(client, key: str, limit: int, window_seconds: int) -> bool:
    """
    Check a rate limit with a Redis sorted set (sliding window).

    Returns:
        True if the request is allowed
    """
    now = time.time()
    window_start = now - window_seconds

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, window_start)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)

    results = await pipe.execute()
    current_count = results[1]

    return current_count < limit


def _sweep_memory_store(now: float) -> None:
    """Drop every key whose window holds no requests any more."""
    global _last_sweep

    for key, (window_seconds, entries) in list(_memory_store.items()):
        if not any(ts > now - window_seconds for ts, _ in entries):
            del _memory_store[key]

    _last_sweep = now


def _check_rate_limit_memory(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check a rate limit in process memory.

    Only accurate for a single server instance. Keys are evicted once
    their window is empty.
    """
    now = time.time()
    window_start = now - window_seconds

    if now - _last_sweep >= MEMORY_SWEEP_INTERVAL_SECONDS:
        _sweep_memory_store(now)

    _, stored = _memory_store.get(key, (window_seconds, []))
    entries = [(ts, count) for ts, count in stored if ts > window_start]

    if sum(count for _, count in entries) >= limit:
        _memory_store[key] = (window_seconds, entries)
        return False

    entries.append((now, 1))
    _memory_store[key] = (window_seconds, entries)
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check whether a request is within its rate limit.

    Uses the shared Redis client when it is connected, otherwise memory.

    Args:
        key: Unique key for this limit (e.g. "recipient:1.2.3.4:submit")
        limit: Maximum requests allowed in the window
        window_seconds: Window length in seconds

    Returns:
        True if the request is allowed, False if the limit is exceeded
    """
    redis_client = await get_redis()

    if redis_client is not None:
        try:
            return await _check_rate_limit_redis(redis_client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


def client_ip_key(request: Request) -> str:
    """Default key: client IP + endpoint path."""
    client_ip = request.client.host if request.client else "unknown"
    return f"rate_limit:{client_ip}:{request.url.path}"


def recipient_action_key(action: str) -> Callable[[Request], str]:
    """
    Key recipient endpoints by client IP and action, not by token.

    Keying on the token would give a guesser a fresh budget per guess.
    """

    def key_func(request: Request) -> str:
        client_ip = request.client.host if request.client else "unknown"
        return f"recipient:{client_ip}:{action}"

    return key_func


def rate_limit(
    limit: int = 10,
    window_seconds: int = 60,
    key_func: Callable[[Request], str] | None = None,
):
    """
    Rate limiting decorator for FastAPI endpoints.

    The decorated endpoint must accept a ``request: Request`` parameter.

    Usage:
        @router.post("/recipient/{token}/submit")
        @rate_limit(limit=10, window_seconds=60, key_func=recipient_action_key("submit"))
        async def submit(request: Request, ...):
            ...

    Raises:
        RateLimitExceeded: When the limit is exceeded (HTTP 429)
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            request: Request | None = kwargs.get("request")
            if request is None:
                request = next((arg for arg in args if isinstance(arg, Request)), None)

            if request is None:
                logger.warning(
                    f"Rate limit decorator on {func.__name__} couldn't find Request object"
                )
                return await func(*args, **kwargs)

            key = key_func(request) if key_func else client_ip_key(request)

            if not await check_rate_limit(key, limit, window_seconds):
                logger.warning(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
                raise RateLimitExceeded(limit, window_seconds)

            return await func(*args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "RateLimitExceeded",
    "check_rate_limit",
    "client_ip_key",
    "rate_limit",
    "recipient_action_key",
]
