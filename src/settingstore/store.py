#!/usr/bin/env python3
"""
Settings store: three-tier coherence engine

Read path:   memo cache → shared cache → backing store (read-through)
Write path:  backing store commit → shared cache → memo cache (write-through)

Implements:
- get(key, default) → value | default
- set(key, value, description) → SettingRecord
- set_many(entries, description) → [SettingRecord]
- has(key) → bool
- remove(key) → bool
- all(columns) / search(pattern) → [SettingRecord]   (always the backing store)
- clear_memory_cache()

Failure policy:
- Reads fail open: a broken tier is a miss, a broken backing store returns
  the caller's default and is reported through logging + the reporter hook.
- Writes fail closed: backing store errors propagate and no cache is touched.

Known limitations:
- No per-key write lock. Two concurrent set() calls on one key race; the
  backing store keeps whichever commit lands last, while the caches keep
  whichever write-through lands last. They can disagree until the entry is
  forgotten or re-read from the backing store.
- A read-through that overlaps a write in this process never caches what it
  read: every write bumps a per-key generation, and the read only populates
  the caches if the generation is unchanged. Writers in other processes are
  not tracked.
- No cross-process invalidation channel. Another process's warm memo cache
  keeps its value until that process calls clear_memory_cache() or restarts.
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .backing import BackingStore, SettingRecord
from .errors import ConfigurationError, InvalidBackingStore
from .memo import MemoCache
from .namespace import DEFAULT_PREFIX, Namespace, make_cache_key
from .sentinels import ABSENT, MISSING
from .shared import LocalSharedCache, SharedCache

logger = logging.getLogger(__name__)

Reporter = Callable[[BaseException, Dict[str, Any]], None]

BACKING_METHODS = ("get", "upsert", "delete", "bulk_upsert", "list_all", "search")
SHARED_METHODS = ("get", "set", "has", "forget")


def _check_backing(backing: Any) -> str:
    """Validate the backing store binding and return its identity."""
    if backing is None:
        raise InvalidBackingStore("A backing store is required")
    missing = [m for m in BACKING_METHODS if not callable(getattr(backing, m, None))]
    if missing:
        raise InvalidBackingStore(
            f"{type(backing).__name__} is not a backing store (missing: {', '.join(missing)})"
        )
    try:
        identity = getattr(backing, "identity", None)
    except NotImplementedError:
        identity = None
    if not isinstance(identity, str) or not identity:
        raise InvalidBackingStore(f"{type(backing).__name__} has no usable identity")
    return identity


class SettingsStore:
    """
    Coherent key/value settings over memo, shared and backing tiers.

    The memo cache is owned by this instance unless one is passed in;
    entries are scoped by the namespace derived from the backing store
    identity, so several stores can share one memo or shared cache
    without colliding.
    """

    def __init__(
        self,
        backing: BackingStore,
        shared: Optional[SharedCache] = None,
        memo: Optional[MemoCache] = None,
        cache_prefix: str = DEFAULT_PREFIX,
        reporter: Optional[Reporter] = None,
    ):
        identity = _check_backing(backing)

        if shared is None:
            shared = LocalSharedCache()
        missing = [m for m in SHARED_METHODS if not callable(getattr(shared, m, None))]
        if missing:
            raise ConfigurationError(
                f"{type(shared).__name__} is not a shared cache (missing: {', '.join(missing)})"
            )
        if not isinstance(cache_prefix, str):
            raise ConfigurationError("cache_prefix must be a string")

        self._backing = backing
        self._shared = shared
        self._memo = memo if memo is not None else MemoCache()
        self._namespace = Namespace(identity, cache_prefix)
        self._ns = self._namespace.name
        self._reporter = reporter

        # ns_key -> number of invalidating writes seen by this store
        self._generations: Dict[str, int] = {}
        self._gen_lock = threading.Lock()

        self._stats_lock = threading.Lock()
        self._stats = {
            "memo_hits": 0,
            "shared_hits": 0,
            "backing_reads": 0,
            "writes": 0,
            "removals": 0,
            "read_errors": 0,
            "cache_errors": 0,
        }

        logger.info(f"SettingsStore initialized (namespace={self._ns})")

    # ── Introspection ────────────────────────────────────────────

    @property
    def backing(self) -> BackingStore:
        return self._backing

    @property
    def namespace(self) -> str:
        return self._ns

    def cache_key(self, key: str) -> str:
        """Fully namespaced key used in both cache tiers."""
        return make_cache_key(self._ns, key)

    # ── Reads ────────────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        """
        Resolve a setting.

        A memo hit returns without any further I/O. Otherwise the shared
        cache is consulted, then the backing store; whatever is learned
        (including "no such record") is cached in both tiers.
        """
        ns_key = self.cache_key(key)

        value = self._memo.get(self._ns, ns_key)
        if value is not MISSING:
            self._count("memo_hits")
        else:
            value = self._resolve(key, ns_key, "get")

        if value is MISSING or value is ABSENT:
            return default
        return value

    def has(self, key: str) -> bool:
        """Whether a record exists. A cached answer from any tier short-circuits."""
        ns_key = self.cache_key(key)

        value = self._memo.get(self._ns, ns_key)
        if value is not MISSING:
            self._count("memo_hits")
        else:
            value = self._resolve(key, ns_key, "has")

        return value is not MISSING and value is not ABSENT

    def _resolve(self, key: str, ns_key: str, op: str) -> Any:
        """
        Memo miss: shared cache, then backing store.

        Returns the value, ABSENT, or MISSING when the backing store failed
        (in which case nothing is cached). If a write to the key lands while
        the lookup is in flight, the value is returned but not cached.
        """
        generation = self._generation(ns_key)

        shared_ok = True
        try:
            value = self._shared.get(ns_key)
        except Exception as e:  # noqa: BLE001
            shared_ok = False
            value = MISSING
            self._count("cache_errors")
            self._report(e, op, key, "shared")

        if value is not MISSING:
            self._count("shared_hits")
            self._populate(ns_key, key, value, generation, write_shared=False, op=op)
            return value

        self._count("backing_reads")
        try:
            record = self._backing.get(key)
        except Exception as e:  # noqa: BLE001
            self._count("read_errors")
            self._report(e, op, key, "backing")
            return MISSING

        value = record.value if record is not None else ABSENT
        self._populate(ns_key, key, value, generation, write_shared=shared_ok, op=op)
        return value

    def _populate(self, ns_key: str, key: str, value: Any, generation: int,
                  write_shared: bool, op: str) -> None:
        """Cache a read-through result unless a write overtook it."""
        if self._generation(ns_key) != generation:
            return

        if write_shared:
            try:
                self._shared.set(ns_key, value)
            except Exception as e:  # noqa: BLE001
                self._count("cache_errors")
                self._report(e, op, key, "shared")
        self._memo.set(self._ns, ns_key, value)

        # a write that bumped after the check above may have been overwritten
        if self._generation(ns_key) != generation:
            logger.debug(f"Read of {key!r} overtaken by a write, dropping cached copy")
            self._memo.forget(self._ns, ns_key)
            if write_shared:
                self._forget_shared(ns_key, key)

    def _generation(self, ns_key: str) -> int:
        with self._gen_lock:
            return self._generations.get(ns_key, 0)

    def _bump(self, ns_key: str) -> None:
        with self._gen_lock:
            self._generations[ns_key] = self._generations.get(ns_key, 0) + 1

    def all(self, columns: Optional[Iterable[str]] = None) -> List[SettingRecord]:
        """Every record, straight from the backing store. Caches are not touched."""
        return self._backing.list_all(columns)

    def search(self, pattern: str) -> List[SettingRecord]:
        """LIKE-pattern search on keys, straight from the backing store."""
        return self._backing.search(pattern)

    # ── Writes ───────────────────────────────────────────────────

    def set(self, key: str, value: Any, description: Optional[str] = None) -> SettingRecord:
        """
        Upsert a setting, then write the stored value through both caches.

        If the backing store fails the error propagates and no cache tier
        is touched.
        """
        record = self._backing.upsert(key, value, description)
        self._write_through(record)
        self._count("writes")
        return record

    def set_many(
        self,
        entries: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]],
        description: Optional[str] = None,
    ) -> List[SettingRecord]:
        """
        Upsert several settings in one backing store transaction.

        Caches are written only after the transaction commits, in the order
        supplied. On failure nothing is cached and the error propagates.
        """
        items = entries.items() if isinstance(entries, Mapping) else entries
        batch = [(key, value, description) for key, value in items]

        records = self._backing.bulk_upsert(batch)
        for record in records:
            self._write_through(record)
        self._count("writes", len(records))
        return records

    def remove(self, key: str) -> bool:
        """
        Delete a setting. Both cache tiers forget the key whether or not a
        row existed, so any cached sentinel is erased too.
        """
        deleted = self._backing.delete(key)
        self.forget(key)
        self._count("removals")
        return deleted

    def _write_through(self, record: SettingRecord) -> None:
        ns_key = self.cache_key(record.key)
        self._bump(ns_key)
        try:
            self._shared.set(ns_key, record.value)
        except Exception as e:  # noqa: BLE001
            self._count("cache_errors")
            self._report(e, "write_through", record.key, "shared")
            # the old value must not survive the commit
            self._forget_shared(ns_key, record.key)
        self._memo.set(self._ns, ns_key, record.value)

    # ── Cache maintenance ────────────────────────────────────────

    def forget(self, key: str) -> None:
        """Drop one key from the shared and memo caches (backing store untouched)."""
        ns_key = self.cache_key(key)
        self._bump(ns_key)
        self._forget_shared(ns_key, key)
        self._memo.forget(self._ns, ns_key)

    def _forget_shared(self, ns_key: str, key: str) -> None:
        try:
            self._shared.forget(ns_key)
        except Exception as e:  # noqa: BLE001
            self._count("cache_errors")
            logger.error(f"Shared cache may hold a stale entry for {key}: {e}")
            self._call_reporter(e, {"op": "forget", "key": key, "tier": "shared"})

    def clear_memory_cache(self) -> int:
        """Evict this store's namespace from the memo cache. Returns entries cleared."""
        return self._memo.clear_namespace(self._ns)

    # ── Reporting ────────────────────────────────────────────────

    def _report(self, exc: BaseException, op: str, key: str, tier: str) -> None:
        logger.warning(f"Settings {op}({key!r}): {tier} tier failed: {exc}")
        self._call_reporter(exc, {"op": op, "key": key, "tier": tier})

    def _call_reporter(self, exc: BaseException, context: Dict[str, Any]) -> None:
        if self._reporter is None:
            return
        try:
            self._reporter(exc, context)
        except Exception:  # noqa: BLE001
            logger.exception("Settings error reporter raised")

    def _count(self, name: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[name] += amount

    def get_stats(self) -> Dict[str, Any]:
        """Counters per tier, plus memo occupancy for this namespace."""
        with self._stats_lock:
            stats = dict(self._stats)
        reads = stats["memo_hits"] + stats["shared_hits"] + stats["backing_reads"]
        hits = stats["memo_hits"] + stats["shared_hits"]
        stats["hit_rate_percent"] = round(hits / reads * 100, 1) if reads else 0.0
        stats["memo_entries"] = self._memo.size(self._ns)
        stats["namespace"] = self._ns
        return stats

    def __repr__(self) -> str:
        return f"SettingsStore(backing={self._backing!r}, namespace={self._ns!r})"
