"""Configuration loader for the settings store."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from jsonschema import Draft7Validator

from .errors import ConfigurationError

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "cache_prefix": {"type": "string"},
        "table": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"},
        "database_path": {"type": "string", "minLength": 1},
        "storage_timeout_sec": {"type": "number", "exclusiveMinimum": 0},
        "case_sensitive_search": {"type": "boolean"},
        "eager_load": {"type": "boolean"},
        "eager_load_keys": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "shared_cache": {
            "type": "object",
            "properties": {
                "backend": {"type": "string", "enum": ["local", "redis"]},
                "redis_url": {"type": "string"},
                "socket_timeout_sec": {"type": "number", "exclusiveMinimum": 0},
                "breaker_fails": {"type": "integer", "minimum": 1},
                "breaker_ttl_sec": {"type": "number", "minimum": 0},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

_validator = Draft7Validator(CONFIG_SCHEMA)


@dataclass(frozen=True)
class SharedCacheConfig:
    backend: str = "local"
    redis_url: str = "redis://localhost:6379/0"
    socket_timeout_sec: float = 2.0
    breaker_fails: int = 3
    breaker_ttl_sec: float = 30.0


@dataclass(frozen=True)
class SettingsConfig:
    cache_prefix: str = "settings."
    table: str = "settings"
    database_path: Path = Path("settings.db")
    storage_timeout_sec: float = 10.0
    case_sensitive_search: bool = False
    eager_load: bool = False
    eager_load_keys: Tuple[str, ...] = ()
    shared_cache: SharedCacheConfig = field(default_factory=SharedCacheConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SettingsConfig":
        validate_config(data)
        sc_data = data.get("shared_cache", {})
        return cls(
            cache_prefix=data.get("cache_prefix", "settings."),
            table=data.get("table", "settings"),
            database_path=Path(data.get("database_path", "settings.db")),
            storage_timeout_sec=float(data.get("storage_timeout_sec", 10.0)),
            case_sensitive_search=bool(data.get("case_sensitive_search", False)),
            eager_load=bool(data.get("eager_load", False)),
            eager_load_keys=tuple(data.get("eager_load_keys", ())),
            shared_cache=SharedCacheConfig(
                backend=sc_data.get("backend", "local"),
                redis_url=sc_data.get("redis_url", "redis://localhost:6379/0"),
                socket_timeout_sec=float(sc_data.get("socket_timeout_sec", 2.0)),
                breaker_fails=int(sc_data.get("breaker_fails", 3)),
                breaker_ttl_sec=float(sc_data.get("breaker_ttl_sec", 30.0)),
            ),
        )


def validate_config(data: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(data), key=lambda e: e.path)
    if errors:
        messages = ", ".join(
            f"{'.'.join(str(p) for p in error.path) or '<root>'}: {error.message}"
            for error in errors
        )
        raise ConfigurationError(f"settings config validation failed: {messages}")


ENV_MAP = {
    "cache_prefix": "SETTINGS_CACHE_PREFIX",
    "table": "SETTINGS_TABLE",
    "database_path": "SETTINGS_DB_PATH",
    "storage_timeout_sec": "SETTINGS_STORAGE_TIMEOUT_SEC",
    "case_sensitive_search": "SETTINGS_CASE_SENSITIVE_SEARCH",
    "eager_load": "SETTINGS_EAGER_LOAD",
    "eager_load_keys": "SETTINGS_EAGER_LOAD_KEYS",
    "shared_cache.backend": "SETTINGS_SHARED_CACHE",
    "shared_cache.redis_url": "SETTINGS_REDIS_URL",
    "shared_cache.socket_timeout_sec": "SETTINGS_REDIS_TIMEOUT_SEC",
    "shared_cache.breaker_fails": "SETTINGS_BREAKER_FAILS",
    "shared_cache.breaker_ttl_sec": "SETTINGS_BREAKER_TTL_SEC",
}

_TRUE = {"1", "true", "yes", "on"}


def _coerce(last: str, raw: str) -> Any:
    try:
        if last in {"storage_timeout_sec", "socket_timeout_sec", "breaker_ttl_sec"}:
            return float(raw)
        if last == "breaker_fails":
            return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {last}: {raw!r}") from exc
    if last in {"eager_load", "case_sensitive_search"}:
        return raw.strip().lower() in _TRUE
    if last == "eager_load_keys":
        return [part.strip() for part in raw.split(",") if part.strip()]
    return raw


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for dotted_key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        target = merged
        parts = dotted_key.split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        last = parts[-1]
        target[last] = _coerce(last, os.environ[env_name])

    return merged


def load_config(config_path: Optional[str | Path] = None) -> SettingsConfig:
    """
    Load settings config from YAML (optional) plus environment overrides.

    Without a path only defaults and environment are used; an explicit
    path that does not exist is an error.
    """
    data: Dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        data = load_yaml(path)

    data = merge_env_overrides(data)
    return SettingsConfig.from_dict(data)
