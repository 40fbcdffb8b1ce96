"""Redis-backed cache for Google Maps lookups. A cache problem never fails the request."""

import json
import logging
from typing import Any, Optional

import redis

from .config import DIRECTIONS_CACHE_SECONDS
from .redis_client import try_get_redis_client

logger = logging.getLogger(__name__)

Coordinates = tuple[float, float]


class LookupCache:
    """JSON values under a "profield:<namespace>:" key prefix"""

    def __init__(self, namespace: str, ttl: int):
        self.namespace = namespace
        self.ttl = ttl

    def key(self, suffix: str) -> str:
        return f"profield:{self.namespace}:{suffix}"

    def get(self, suffix: str) -> Optional[Any]:
        client = try_get_redis_client()
        if client is None:
            return None
        try:
            raw = client.get(self.key(suffix))
        except redis.RedisError as e:
            logger.warning(f"⚠️ {self.namespace} cache read failed: {e}")
            return None
        if raw is None:
            return None
        logger.debug(f"✅ {self.namespace} cache hit: {suffix}")
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def set(self, suffix: str, value: Any) -> bool:
        client = try_get_redis_client()
        if client is None:
            return False
        try:
            client.setex(self.key(suffix), self.ttl, json.dumps(value))
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"⚠️ {self.namespace} cache write failed: {e}")
            return False


directions_cache = LookupCache("directions", DIRECTIONS_CACHE_SECONDS)
geocode_cache = LookupCache("geocode", 24 * 3600)


def directions_key(origin: Coordinates, destination: Coordinates) -> str:
    # ~11m rounding so requests from the same spot share entries
    return "{:.4f},{:.4f}:{:.4f},{:.4f}".format(*origin, *destination)


def geocode_key(address: str) -> str:
    return " ".join(address.lower().split())
