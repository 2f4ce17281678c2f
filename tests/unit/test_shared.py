#!/usr/bin/env python3
"""
Unit tests for shared cache adapters
"""

import json
import sys
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import redis

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from settingstore.breaker import CircuitBreakerStore
from settingstore.errors import CacheUnavailable
from settingstore.sentinels import ABSENT, MISSING
from settingstore.shared import LocalSharedCache, RedisSharedCache


class TestLocalSharedCache:

    def test_get_missing(self):
        assert LocalSharedCache().get("k") is MISSING

    def test_set_get_has_forget(self):
        cache = LocalSharedCache()
        cache.set("k", {"a": 1})
        assert cache.has("k") is True
        assert cache.get("k") == {"a": 1}
        cache.forget("k")
        assert cache.has("k") is False
        assert cache.get("k") is MISSING

    def test_absent_sentinel_round_trip(self):
        cache = LocalSharedCache()
        cache.set("k", ABSENT)
        assert cache.get("k") is ABSENT
        assert cache.has("k") is True


class TestRedisSharedCache:

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def cache(self, client):
        return RedisSharedCache(client, breaker_fails=2, breaker_ttl_sec=1)

    def test_set_stores_envelope_without_ttl(self, cache, client):
        cache.set("settings.x:k", {"a": 1})
        client.set.assert_called_once_with("settings.x:k", json.dumps({"found": True, "value": {"a": 1}}))

    def test_set_absent(self, cache, client):
        cache.set("k", ABSENT)
        client.set.assert_called_once_with("k", json.dumps({"found": False}))

    def test_get_value(self, cache, client):
        client.get.return_value = b'{"found": true, "value": [1, 2]}'
        assert cache.get("k") == [1, 2]

    def test_get_null_value(self, cache, client):
        client.get.return_value = b'{"found": true, "value": null}'
        assert cache.get("k") is None

    def test_get_absent(self, cache, client):
        client.get.return_value = b'{"found": false}'
        assert cache.get("k") is ABSENT

    def test_get_miss(self, cache, client):
        client.get.return_value = None
        assert cache.get("k") is MISSING

    def test_undecodable_entry_is_a_miss(self, cache, client):
        client.get.return_value = b"\x80not json"
        assert cache.get("k") is MISSING
        assert cache.stats["corrupt"] == 1

    def test_malformed_envelope_is_a_miss(self, cache, client):
        client.get.return_value = b'{"found": true}'
        assert cache.get("k") is MISSING
        client.get.return_value = b'"plain string"'
        assert cache.get("k") is MISSING
        assert cache.stats["corrupt"] == 2

    def test_has_and_forget(self, cache, client):
        client.exists.return_value = 1
        assert cache.has("k") is True
        cache.forget("k")
        client.delete.assert_called_once_with("k")

    def test_redis_error_becomes_cache_unavailable(self, cache, client):
        client.get.side_effect = redis.ConnectionError("refused")
        with pytest.raises(CacheUnavailable):
            cache.get("k")
        assert cache.stats["errors"] == 1

    def test_breaker_trips_and_short_circuits(self, cache, client):
        client.get.side_effect = redis.TimeoutError("slow")
        for _ in range(2):
            with pytest.raises(CacheUnavailable):
                cache.get("k")

        client.get.reset_mock()
        with pytest.raises(CacheUnavailable):
            cache.get("k")
        client.get.assert_not_called()
        assert cache.stats["short_circuits"] == 1

    def test_breaker_recovers(self, cache, client, monkeypatch):
        client.get.side_effect = redis.TimeoutError("slow")
        for _ in range(2):
            with pytest.raises(CacheUnavailable):
                cache.get("k")

        future = time.time() + 2
        monkeypatch.setattr("time.time", lambda: future)
        client.get.side_effect = None
        client.get.return_value = b'{"found": false}'
        assert cache.get("k") is ABSENT

    def test_stats_include_breaker(self, cache, client):
        client.get.side_effect = redis.ConnectionError("refused")
        for _ in range(2):
            with pytest.raises(CacheUnavailable):
                cache.get("k")

        stats = cache.get_stats()
        assert stats["errors"] == 2
        assert stats["breaker"]["open"] is True
        assert stats["breaker"]["trips"] == 1

    def test_error_counter_under_threads(self, client):
        cache = RedisSharedCache(client, breaker_fails=10_000)
        client.get.side_effect = redis.ConnectionError("refused")

        def hammer():
            for _ in range(200):
                with pytest.raises(CacheUnavailable):
                    cache.get("k")

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert cache.get_stats()["errors"] == 1600

    def test_shared_breaker_store(self, client):
        breaker = CircuitBreakerStore()
        cache = RedisSharedCache(client, breaker=breaker, breaker_fails=1)
        client.set.side_effect = redis.ConnectionError("down")
        with pytest.raises(CacheUnavailable):
            cache.set("k", 1)
        assert breaker.can_attempt(RedisSharedCache.BREAKER_KEY) is False

    def test_from_url(self):
        with patch("settingstore.shared.redis.Redis.from_url") as from_url:
            cache = RedisSharedCache("redis://cache:6379/2", socket_timeout=0.5)
        from_url.assert_called_once_with(
            "redis://cache:6379/2", socket_timeout=0.5, socket_connect_timeout=0.5,
        )
        assert cache.url == "redis://cache:6379/2"
