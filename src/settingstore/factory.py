"""
Store wiring from configuration, plus the process-wide default store.

    configure(load_config("config/settings.yml"))
    setting("app.name", "Untitled")
"""

import logging
import threading
from typing import Any, Optional, Union

from .backing import SQLiteBackingStore
from .config import SettingsConfig
from .errors import ConfigurationError
from .preload import Preloader
from .shared import LocalSharedCache, RedisSharedCache, SharedCache
from .store import SettingsStore

logger = logging.getLogger(__name__)


def build_shared_cache(config: SettingsConfig) -> SharedCache:
    sc = config.shared_cache
    if sc.backend == "local":
        return LocalSharedCache()
    if sc.backend == "redis":
        return RedisSharedCache(
            sc.redis_url,
            socket_timeout=sc.socket_timeout_sec,
            breaker_fails=sc.breaker_fails,
            breaker_ttl_sec=sc.breaker_ttl_sec,
        )
    raise ConfigurationError(f"Unknown shared cache backend: {sc.backend!r}")


def build_store(config: Optional[SettingsConfig] = None, reporter=None) -> SettingsStore:
    """Create backing store, shared cache and SettingsStore from config."""
    config = config or SettingsConfig()
    shared = build_shared_cache(config)
    backing = SQLiteBackingStore(
        str(config.database_path),
        table=config.table,
        timeout=config.storage_timeout_sec,
        case_sensitive_search=config.case_sensitive_search,
    )
    return SettingsStore(
        backing,
        shared=shared,
        cache_prefix=config.cache_prefix,
        reporter=reporter,
    )


# ── Module-level default store ──
_store_instance: Optional[SettingsStore] = None
_store_lock = threading.Lock()


def configure(target: Union[SettingsConfig, SettingsStore, None] = None) -> SettingsStore:
    """
    Install the default store, from a config or a ready-made store.

    With a config whose eager_load flag is on, the configured keys are
    preloaded before returning.
    """
    global _store_instance
    if isinstance(target, SettingsStore):
        store = target
        config = None
    else:
        config = target or SettingsConfig()
        store = build_store(config)

    with _store_lock:
        _store_instance = store

    if config is not None and config.eager_load:
        Preloader(store, config.eager_load_keys).run()
    return store


def get_store() -> SettingsStore:
    """Get or create the default store (defaults when never configured)."""
    global _store_instance
    with _store_lock:
        if _store_instance is None:
            _store_instance = build_store()
        return _store_instance


def reset_store() -> None:
    global _store_instance
    with _store_lock:
        _store_instance = None


def setting(key: str, default: Any = None) -> Any:
    """Shortcut for get_store().get(key, default)."""
    return get_store().get(key, default)
