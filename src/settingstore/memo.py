"""
In-process memo cache.

Maps namespace -> {cache key -> resolved value}. Entries never expire; they
leave only through forget() or clear_namespace(). One lock guards the whole
map and is held for O(1) dict work only, never across I/O.
"""

import logging
import threading
from typing import Any, Dict, Optional

from .sentinels import MISSING

logger = logging.getLogger(__name__)


class MemoCache:

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, Dict[str, Any]] = {}

    def get(self, namespace: str, key: str) -> Any:
        """Return the cached value, ABSENT, or MISSING if nothing is cached."""
        with self._lock:
            bucket = self._entries.get(namespace)
            if bucket is None:
                return MISSING
            return bucket.get(key, MISSING)

    def set(self, namespace: str, key: str, value: Any) -> None:
        with self._lock:
            self._entries.setdefault(namespace, {})[key] = value

    def forget(self, namespace: str, key: str) -> None:
        with self._lock:
            bucket = self._entries.get(namespace)
            if bucket is not None:
                bucket.pop(key, None)

    def clear_namespace(self, namespace: str) -> int:
        """Evict every entry of one namespace. Other namespaces are untouched."""
        with self._lock:
            bucket = self._entries.pop(namespace, None)
        cleared = len(bucket) if bucket else 0
        logger.debug(f"Memo cache cleared {cleared} entries for {namespace}")
        return cleared

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self, namespace: Optional[str] = None) -> int:
        with self._lock:
            if namespace is not None:
                return len(self._entries.get(namespace, ()))
            return sum(len(b) for b in self._entries.values())
