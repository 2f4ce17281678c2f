"""Shared fixtures: real SQLite stores plus call-counting wrappers for each tier."""

import sys
from collections import Counter
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from settingstore.backing import SQLiteBackingStore
from settingstore.errors import CacheUnavailable, StorageError
from settingstore.memo import MemoCache
from settingstore.shared import LocalSharedCache
from settingstore.store import SettingsStore


class CountingSharedCache(LocalSharedCache):
    """LocalSharedCache that counts calls and can be switched offline."""

    def __init__(self):
        super().__init__()
        self.calls = Counter()
        self.offline = False

    def _touch(self, op):
        self.calls[op] += 1
        if self.offline:
            raise CacheUnavailable(f"{op}: shared cache offline")

    def get(self, key):
        self._touch("get")
        return super().get(key)

    def set(self, key, value):
        self._touch("set")
        super().set(key, value)

    def has(self, key):
        self._touch("has")
        return super().has(key)

    def forget(self, key):
        self._touch("forget")
        super().forget(key)

    def raw(self, key):
        """Peek without counting."""
        return LocalSharedCache.get(self, key)


class CountingBackingStore(SQLiteBackingStore):
    """SQLite store that counts calls and can be made to fail."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = Counter()
        self.broken = False

    def _touch(self, op):
        self.calls[op] += 1
        if self.broken:
            raise StorageError(f"{op}: database unreachable")

    def get(self, key):
        self._touch("get")
        return super().get(key)

    def upsert(self, key, value, description=None):
        self._touch("upsert")
        return super().upsert(key, value, description)

    def delete(self, key):
        self._touch("delete")
        return super().delete(key)

    def bulk_upsert(self, entries):
        self._touch("bulk_upsert")
        return super().bulk_upsert(entries)

    def list_all(self, columns=None):
        self._touch("list_all")
        return super().list_all(columns)

    def search(self, pattern):
        self._touch("search")
        return super().search(pattern)


@pytest.fixture
def backing(tmp_path):
    store = CountingBackingStore(str(tmp_path / "settings.db"))
    yield store
    store.close()


@pytest.fixture
def shared():
    return CountingSharedCache()


@pytest.fixture
def memo():
    return MemoCache()


@pytest.fixture
def reports():
    return []


@pytest.fixture
def store(backing, shared, memo, reports):
    return SettingsStore(
        backing,
        shared=shared,
        memo=memo,
        cache_prefix="test_settings.",
        reporter=lambda exc, ctx: reports.append((exc, ctx)),
    )
