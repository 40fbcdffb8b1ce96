"""
Shared Redis connection.

Redis is optional: without REDIS_URL the lookup cache is skipped and rate
limits are counted in process memory.
"""

import logging
import time
from typing import Optional

import redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None
_announced_disabled = False
_last_failure: Optional[float] = None

RETRY_AFTER_FAILURE_SECONDS = 30


def _masked(url: str) -> str:
    return url.rsplit("@", 1)[-1] if "@" in url else "****"


def get_redis_client() -> Optional[redis.Redis]:
    """
    Lazily connect on first use.
    Returns None when Redis isn't configured; raises redis errors when it is configured but unreachable.
    """
    global _client, _announced_disabled

    if not REDIS_URL:
        if not _announced_disabled:
            logger.info("ℹ️ REDIS_URL not set - lookup cache off, rate limits kept in memory")
            _announced_disabled = True
        return None

    if _client is None:
        client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        client.ping()
        logger.info(f"📡 Redis connected ({_masked(REDIS_URL)})")
        _client = client

    return _client


def try_get_redis_client() -> Optional[redis.Redis]:
    """
    get_redis_client() that logs and returns None instead of raising.
    After a failed connect, callers get None for RETRY_AFTER_FAILURE_SECONDS
    instead of each request waiting on the connect timeout again.
    """
    global _last_failure

    if _last_failure is not None and time.monotonic() - _last_failure < RETRY_AFTER_FAILURE_SECONDS:
        return None
    try:
        client = get_redis_client()
    except redis.RedisError as e:
        _last_failure = time.monotonic()
        logger.warning(f"⚠️ Redis unavailable, retrying in {RETRY_AFTER_FAILURE_SECONDS}s: {e}")
        return None
    _last_failure = None
    return client
