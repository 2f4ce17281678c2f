"""Startup warm-up: resolve configured keys so first requests hit warm caches."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

_NOT_FOUND = object()


@dataclass
class PreloadReport:
    loaded: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: bool = False
    reason: Optional[str] = None
    duration_ms: float = 0.0


class Preloader:
    """
    Warm the caches of one SettingsStore.

    Never raises: a backing store that is not ready (table not created yet)
    skips the whole run, and a failing key is logged and counted.
    A SettingsStore swallows read errors and returns the default, so a
    key counts as failed when the store's read_errors counter moved while
    resolving it; stores that raise instead are counted the same way.
    """

    def __init__(self, store, keys: Iterable[str]) -> None:
        self._store = store
        self._keys = list(dict.fromkeys(keys))

    def _backing_ready(self) -> tuple[bool, Optional[str]]:
        is_ready = getattr(self._store.backing, "is_ready", None)
        if is_ready is None:
            return True, None
        try:
            ready = bool(is_ready())
        except Exception as exc:  # noqa: BLE001
            return False, str(exc)
        return ready, None if ready else "backing store not ready"

    def _read_errors(self) -> Optional[int]:
        get_stats = getattr(self._store, "get_stats", None)
        if get_stats is None:
            return None
        count = get_stats().get("read_errors")
        return count if isinstance(count, int) else None

    def run(self) -> PreloadReport:
        report = PreloadReport()
        if not self._keys:
            return report

        started = time.time()
        ready, reason = self._backing_ready()
        if not ready:
            report.skipped = True
            report.reason = reason
            logger.info("Settings preload skipped: %s", reason)
            return report

        for key in self._keys:
            errors_before = self._read_errors()
            try:
                value = self._store.get(key, _NOT_FOUND)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Settings preload failed for %s: %s", key, exc)
                report.failed.append(key)
                continue
            if errors_before is not None and self._read_errors() != errors_before:
                report.failed.append(key)
            elif value is _NOT_FOUND:
                report.missing.append(key)
            else:
                report.loaded.append(key)

        report.duration_ms = round((time.time() - started) * 1000, 1)
        logger.info(
            "Settings preload: %d loaded, %d missing, %d failed (%.1fms)",
            len(report.loaded), len(report.missing), len(report.failed), report.duration_ms,
        )
        return report
