#!/usr/bin/env python3
"""
Unit tests for store wiring and the module-level default store
"""

import sys
from dataclasses import replace
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from settingstore import factory
from settingstore.config import SettingsConfig, SharedCacheConfig
from settingstore.errors import ConfigurationError
from settingstore.shared import LocalSharedCache, RedisSharedCache
from settingstore.store import SettingsStore


@pytest.fixture
def config(tmp_path):
    return SettingsConfig(database_path=tmp_path / "settings.db", cache_prefix="test_settings.")


@pytest.fixture(autouse=True)
def clean_default_store():
    factory.reset_store()
    yield
    factory.reset_store()


class TestBuildStore:

    def test_build_store_from_config(self, config):
        store = factory.build_store(config)
        assert isinstance(store, SettingsStore)
        assert store.namespace.startswith("test_settings.settings.")
        store.set("k", "v")
        assert store.get("k") == "v"
        store.backing.close()

    def test_custom_table(self, config):
        store = factory.build_store(replace(config, table="custom_settings"))
        assert store.backing.table == "custom_settings"
        store.backing.close()

    def test_local_shared_cache(self, config):
        assert isinstance(factory.build_shared_cache(config), LocalSharedCache)

    def test_redis_shared_cache(self, config):
        cfg = replace(config, shared_cache=SharedCacheConfig(backend="redis", redis_url="redis://cache:6379/3"))
        cache = factory.build_shared_cache(cfg)
        assert isinstance(cache, RedisSharedCache)
        assert cache.url == "redis://cache:6379/3"

    def test_unknown_backend_fails_at_construction(self, config):
        cfg = replace(config, shared_cache=SharedCacheConfig(backend="memcached"))
        with pytest.raises(ConfigurationError):
            factory.build_store(cfg)

    def test_invalid_table_fails_at_construction(self, config):
        with pytest.raises(ConfigurationError):
            factory.build_store(replace(config, table="1bad"))


class TestDefaultStore:

    def test_configure_with_config(self, config):
        store = factory.configure(config)
        assert factory.get_store() is store
        store.backing.close()

    def test_configure_with_store(self, store):
        assert factory.configure(store) is store
        assert factory.get_store() is store

    def test_setting_helper(self, store):
        factory.configure(store)
        store.set("app.name", "Acme Portal")
        assert factory.setting("app.name") == "Acme Portal"
        assert factory.setting("missing", "D") == "D"
        assert factory.setting("missing") is None

    def test_setting_helper_reflects_changes(self, store):
        factory.configure(store)
        store.set("k", 1)
        assert factory.setting("k") == 1
        store.set("k", 2)
        assert factory.setting("k") == 2
        store.remove("k")
        assert factory.setting("k", "gone") == "gone"

    def test_configure_eager_loads(self, config, monkeypatch):
        seed = factory.build_store(config)
        seed.set("app.name", "Acme Portal")
        seed.backing.close()

        calls = []
        original = factory.Preloader.run

        def spy(self):
            report = original(self)
            calls.append(report)
            return report

        monkeypatch.setattr(factory.Preloader, "run", spy)
        store = factory.configure(replace(config, eager_load=True, eager_load_keys=("app.name",)))

        assert calls[0].loaded == ["app.name"]
        assert store.get_stats()["memo_entries"] == 1
        store.backing.close()

    def test_no_preload_without_flag(self, config):
        store = factory.configure(replace(config, eager_load_keys=("app.name",)))
        assert store.get_stats()["memo_entries"] == 0
        store.backing.close()
