#!/usr/bin/env python3
"""
Settings Admin Command

Clears cached settings after out-of-band changes (manual SQL, restores,
another deployment writing the table), and offers a few thin helpers.

Usage:
    settingstore clear [KEY]           # forget one key, or every known key
    settingstore get KEY
    settingstore set KEY VALUE [--description TEXT]
    settingstore list [PATTERN]
"""

import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from .config import load_config
from .errors import SettingsError
from .factory import build_store
from .store import SettingsStore

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


def clear_single_setting(store: SettingsStore, key: str) -> str:
    """Forget one namespaced cache entry."""
    store.forget(key)
    logger.info(f"Forgot cached setting {store.cache_key(key)}")
    return f"Cache cleared for setting '{key}'."


def clear_all_settings(store: SettingsStore) -> str:
    """Forget the cache entry of every key known to the backing store."""
    count = 0
    for record in store.all(columns=["key"]):
        store.forget(record.key)
        count += 1
    store.clear_memory_cache()
    logger.info(f"Forgot {count} cached settings in {store.namespace}")
    return f"All settings caches cleared ({count} settings)."


def parse_value(raw: str) -> Any:
    """JSON when it parses, plain string otherwise."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="settingstore", description="Settings store admin")
    parser.add_argument("--config", help="YAML config file (defaults + env when omitted)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    sub = parser.add_subparsers(dest="command", required=True)

    p_clear = sub.add_parser("clear", help="Clear cached settings")
    p_clear.add_argument("key", nargs="?", help="Only this key; all keys when omitted")

    p_get = sub.add_parser("get", help="Print one setting as JSON")
    p_get.add_argument("key")

    p_set = sub.add_parser("set", help="Store one setting")
    p_set.add_argument("key")
    p_set.add_argument("value", help="JSON value, or a plain string")
    p_set.add_argument("--description", default=None)

    p_list = sub.add_parser("list", help="List settings, optionally by LIKE pattern")
    p_list.add_argument("pattern", nargs="?")

    return parser


def run(args: argparse.Namespace, store: SettingsStore) -> List[str]:
    """Execute one command and return the lines to print."""
    if args.command == "clear":
        if args.key:
            return [clear_single_setting(store, args.key)]
        return [clear_all_settings(store)]

    if args.command == "get":
        return [json.dumps(store.get(args.key))]

    if args.command == "set":
        record = store.set(args.key, parse_value(args.value), args.description)
        return [f"Stored setting '{record.key}'."]

    if args.command == "list":
        records = store.search(args.pattern) if args.pattern else store.all()
        return [f"{r.key} = {json.dumps(r.value)}" for r in records]

    raise SettingsError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None, store: Optional[SettingsStore] = None) -> int:
    """Entry point for the settingstore console script."""
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    try:
        if store is None:
            store = build_store(load_config(args.config))
        for line in run(args, store):
            print(line)
    except (SettingsError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
