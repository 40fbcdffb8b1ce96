"""
Fixed-window rate limiting for expensive endpoints.

With Redis configured the counter is a shared INCR key so every worker sees
the same count. Without it (or while Redis is failing) counts are kept per
process in memory_cache.
"""

import logging
import time
from threading import Lock
from typing import NamedTuple, Optional

import redis
from fastapi import HTTPException, Request

from .redis_client import try_get_redis_client

logger = logging.getLogger(__name__)

# {key: {"count": int, "reset_time": int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()


class WindowState(NamedTuple):
    allowed: bool
    count: int
    retry_after: int


def _hit_memory(key: str, limit: int, window_seconds: int, now: int) -> WindowState:
    with cache_lock:
        # Drop finished windows so the dict doesn't grow with every client ip
        for stale in [k for k, v in memory_cache.items() if now >= v["reset_time"]]:
            del memory_cache[stale]

        entry = memory_cache.setdefault(key, {"count": 0, "reset_time": now + window_seconds})
        allowed = entry["count"] < limit
        if allowed:
            entry["count"] += 1
        return WindowState(allowed, entry["count"], max(0, entry["reset_time"] - now))


def _hit_redis(client: redis.Redis, key: str, limit: int, window_seconds: int) -> WindowState:
    pipe = client.pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    count, ttl = pipe.execute()
    if ttl is None or ttl < 0:
        # First hit of a new window
        client.expire(key, window_seconds)
        ttl = window_seconds
    retry_after = ttl
    return WindowState(count <= limit, min(count, limit), retry_after)


def hit(key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None) -> WindowState:
    """Count one request against key and report whether it fits the window"""
    if client is not None:
        try:
            return _hit_redis(client, f"ratelimit:{key}", limit, window_seconds)
        except redis.RedisError as e:
            logger.warning(f"⚠️ Redis rate limit failed for {key}, counting in memory: {e}")
    return _hit_memory(key, limit, window_seconds, int(time.time()))


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str, per_ip: bool = True):
    """
    Build a FastAPI dependency enforcing `limit` requests per `window_seconds`.

        rate_limit_optimize = create_rate_limiter(limit=30, window_seconds=60, key_prefix="optimize_route")

        @router.post("/optimize-route")
        async def optimize_route(..., _: None = Depends(rate_limit_optimize)):
    """

    async def rate_limiter(request: Request):
        key = f"{key_prefix}:{client_ip(request)}" if per_ip else f"{key_prefix}:global"
        state = hit(key, limit, window_seconds, try_get_redis_client())

        if not state.allowed:
            logger.warning(f"🚫 Rate limit exceeded for {key} ({limit}/{window_seconds}s)")
            raise HTTPException(
                status_code=429,
                detail={
                    "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                    "retry_after": state.retry_after,
                    "limit": limit,
                    "window_seconds": window_seconds,
                },
                headers={"Retry-After": str(state.retry_after)},
            )

        request.state.rate_limit_remaining = limit - state.count

    return rate_limiter
