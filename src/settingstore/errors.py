"""Exception hierarchy for the settings store."""

from __future__ import annotations


class SettingsError(Exception):
    """Base class for every error raised by settingstore."""


class StorageError(SettingsError):
    """Backing store unreachable, query failed, or a value could not be stored."""


class CacheUnavailable(SettingsError):
    """Shared cache unreachable (or short-circuited by its breaker)."""


class ConfigurationError(SettingsError):
    """Invalid configuration. Raised at construction, never per call."""


class InvalidBackingStore(ConfigurationError):
    """The object bound as backing store does not implement the contract."""
