"""
Failure counter that opens a circuit around an unreachable shared cache.

One breaker store can guard several endpoints; each endpoint key has its
own consecutive-failure count and open window. Safe to share between
threads.
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass, replace
from typing import Dict, Optional


@dataclass
class BreakerState:
    failures: int = 0
    open_until: float = 0.0
    trips: int = 0
    last_error: Optional[str] = None

    def is_open(self, now: float) -> bool:
        return now < self.open_until

    def close(self) -> None:
        self.failures = 0
        self.open_until = 0.0
        self.last_error = None


class CircuitBreakerStore:
    def __init__(self) -> None:
        self._endpoints: Dict[str, BreakerState] = {}
        self._lock = threading.Lock()

    def _state(self, key: str) -> BreakerState:
        return self._endpoints.setdefault(key, BreakerState())

    def can_attempt(self, key: str) -> bool:
        """False while the circuit for `key` is open."""
        with self._lock:
            return not self._state(key).is_open(time.time())

    def record_success(self, key: str) -> None:
        with self._lock:
            self._state(key).close()

    def record_failure(self, key: str, ttl_sec: float, max_failures: int, error: Optional[str] = None) -> bool:
        """Count a failure. Returns True when this failure opened the circuit."""
        with self._lock:
            state = self._state(key)
            state.failures += 1
            state.last_error = error
            if state.failures < max_failures:
                return False
            state.open_until = time.time() + ttl_sec
            state.failures = 0
            state.trips += 1
            return True

    def get_state(self, key: str) -> BreakerState:
        """Copy of the current state for `key`."""
        with self._lock:
            return replace(self._state(key))

    def snapshot(self, key: str) -> dict:
        with self._lock:
            state = self._state(key)
            data = asdict(state)
            data["open"] = state.is_open(time.time())
            return data
