"""
Settings Store
Three-tier coherent key/value configuration store:
memo cache (in-process) -> shared cache -> durable backing store.
"""

from .errors import (
    SettingsError, StorageError, CacheUnavailable,
    ConfigurationError, InvalidBackingStore,
)
from .sentinels import ABSENT, MISSING
from .backing import BackingStore, SettingRecord, SQLiteBackingStore
from .shared import SharedCache, LocalSharedCache, RedisSharedCache
from .memo import MemoCache
from .namespace import Namespace, derive_namespace, make_cache_key
from .store import SettingsStore
from .preload import Preloader, PreloadReport
from .config import SettingsConfig, SharedCacheConfig, load_config
from .factory import build_store, configure, get_store, reset_store, setting

__all__ = [
    'SettingsError', 'StorageError', 'CacheUnavailable',
    'ConfigurationError', 'InvalidBackingStore',
    'ABSENT', 'MISSING',
    'BackingStore', 'SettingRecord', 'SQLiteBackingStore',
    'SharedCache', 'LocalSharedCache', 'RedisSharedCache',
    'MemoCache',
    'Namespace', 'derive_namespace', 'make_cache_key',
    'SettingsStore',
    'Preloader', 'PreloadReport',
    'SettingsConfig', 'SharedCacheConfig', 'load_config',
    'build_store', 'configure', 'get_store', 'reset_store', 'setting',
]
