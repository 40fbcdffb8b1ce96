import pytest
import redis

from profield import cache, redis_client


@pytest.fixture
def unreachable_redis(monkeypatch):
    attempts = []

    def refuse(url, **kwargs):
        attempts.append(url)
        raise redis.ConnectionError("Connection refused")

    monkeypatch.setattr(redis_client, "REDIS_URL", "redis://cache.internal:6379/0")
    monkeypatch.setattr(redis_client, "_client", None)
    monkeypatch.setattr(redis_client, "_last_failure", None)
    monkeypatch.setattr(redis_client.redis, "from_url", refuse)
    return attempts


def test_cache_is_skipped_without_redis():
    assert cache.directions_cache.get("anything") is None
    assert cache.directions_cache.set("anything", {"a": 1}) is False


def test_failed_connect_is_not_retried_on_every_call(unreachable_redis):
    assert redis_client.try_get_redis_client() is None
    assert redis_client.try_get_redis_client() is None
    assert cache.directions_cache.get("39.7800,-89.6500:39.8000,-89.6500") is None

    assert len(unreachable_redis) == 1


def test_connect_is_retried_after_the_backoff(unreachable_redis, monkeypatch):
    assert redis_client.try_get_redis_client() is None
    monkeypatch.setattr(redis_client, "RETRY_AFTER_FAILURE_SECONDS", 0)

    assert redis_client.try_get_redis_client() is None
    assert len(unreachable_redis) == 2
