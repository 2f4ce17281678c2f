#!/usr/bin/env python3
"""
Shared Cache Adapters
Cross-process (or cross-request) tier between the memo cache and the backing store.

Implements:
- get(key) → value | ABSENT | MISSING
- set(key, value)        (no expiry: "forever" until forgotten)
- has(key) → bool
- forget(key)

Adapters raise CacheUnavailable when the cache cannot be reached; the
settings store decides whether that is a miss or a logged write-through failure.
"""

import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, Union

import redis
from jsonschema import Draft7Validator

from .breaker import CircuitBreakerStore
from .errors import CacheUnavailable
from .sentinels import ABSENT, MISSING

logger = logging.getLogger(__name__)

ENVELOPE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["found"],
    "properties": {
        "found": {"type": "boolean"},
        "value": {},
    },
    "if": {"properties": {"found": {"const": True}}},
    "then": {"required": ["found", "value"]},
    "additionalProperties": False,
}

_envelope_validator = Draft7Validator(ENVELOPE_SCHEMA)


class SharedCache:
    """Contract for the shared tier. Keys are opaque, already-namespaced strings."""

    def get(self, key: str) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def has(self, key: str) -> bool:
        raise NotImplementedError

    def forget(self, key: str) -> None:
        raise NotImplementedError


class LocalSharedCache(SharedCache):
    """
    In-process shared cache.

    One instance handed to several stores behaves like a shared cache
    for everything living in this process (tests, single-worker apps).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Any:
        with self._lock:
            return self._data.get(key, MISSING)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def forget(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class RedisSharedCache(SharedCache):
    """
    Redis-backed shared cache.

    Values are stored as JSON envelopes with no TTL:
        {"found": true, "value": ...}  -> cached value
        {"found": false}               -> cached ABSENT

    A circuit breaker stops hammering an unreachable server: after
    `breaker_fails` consecutive errors every call fails fast with
    CacheUnavailable for `breaker_ttl_sec` seconds.
    """

    BREAKER_KEY = "redis"

    def __init__(self, client: Union[str, "redis.Redis"] = "redis://localhost:6379/0",
                 socket_timeout: float = 2.0, breaker: Optional[CircuitBreakerStore] = None,
                 breaker_fails: int = 3, breaker_ttl_sec: float = 30.0):
        if isinstance(client, str):
            self.url = client
            self._client = redis.Redis.from_url(
                client,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )
        else:
            self.url = None
            self._client = client

        self.socket_timeout = socket_timeout
        self._breaker = breaker or CircuitBreakerStore()
        self._breaker_fails = breaker_fails
        self._breaker_ttl_sec = breaker_ttl_sec

        self._stats_lock = threading.Lock()
        self.stats = {"errors": 0, "short_circuits": 0, "corrupt": 0}

    def _call(self, op: str, fn: Callable[["redis.Redis"], Any]) -> Any:
        if not self._breaker.can_attempt(self.BREAKER_KEY):
            self._count("short_circuits")
            raise CacheUnavailable(f"Shared cache {op} skipped: circuit open")

        try:
            result = fn(self._client)
        except redis.RedisError as e:
            self._count("errors")
            tripped = self._breaker.record_failure(
                self.BREAKER_KEY, self._breaker_ttl_sec, self._breaker_fails, error=str(e),
            )
            if tripped:
                logger.error(
                    "Shared cache unreachable, circuit open for %ss: %s",
                    self._breaker_ttl_sec, e,
                )
            raise CacheUnavailable(f"Shared cache {op} failed: {e}") from e

        self._breaker.record_success(self.BREAKER_KEY)
        return result

    def get(self, key: str) -> Any:
        raw = self._call("get", lambda c: c.get(key))
        if raw is None:
            return MISSING
        return self._unwrap(key, raw)

    def set(self, key: str, value: Any) -> None:
        if value is ABSENT:
            envelope = {"found": False}
        else:
            envelope = {"found": True, "value": value}
        payload = json.dumps(envelope)
        self._call("set", lambda c: c.set(key, payload))

    def has(self, key: str) -> bool:
        return bool(self._call("has", lambda c: c.exists(key)))

    def forget(self, key: str) -> None:
        self._call("forget", lambda c: c.delete(key))

    def _unwrap(self, key: str, raw: Any) -> Any:
        """Decode an envelope. Anything malformed counts as a miss."""
        try:
            envelope = json.loads(raw)
        except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as e:
            self._count("corrupt")
            logger.warning(f"Ignoring undecodable shared cache entry {key}: {e}")
            return MISSING

        errors = sorted(_envelope_validator.iter_errors(envelope), key=lambda e: e.path)
        if errors:
            self._count("corrupt")
            messages = ", ".join(error.message for error in errors)
            logger.warning(f"Ignoring malformed shared cache entry {key}: {messages}")
            return MISSING

        if not envelope["found"]:
            return ABSENT
        return envelope["value"]

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self.stats[name] += 1

    def get_stats(self) -> dict:
        with self._stats_lock:
            stats = dict(self.stats)
        stats["breaker"] = self._breaker.snapshot(self.BREAKER_KEY)
        return stats

    def close(self) -> None:
        self._client.close()
