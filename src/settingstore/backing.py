#!/usr/bin/env python3
"""
Settings Backing Store
Durable key/value table: the source of truth behind both cache tiers.

Implements:
- get(key) → SettingRecord | None
- upsert(key, value, description) → SettingRecord
- delete(key) → bool
- bulk_upsert(entries) → [SettingRecord]  (one transaction, all or nothing)
- list_all(columns) → [SettingRecord]
- search(pattern) → [SettingRecord]  (SQL LIKE: % = any run, _ = one char)

LIKE case sensitivity is store-dependent. SQLite folds ASCII case by default;
pass case_sensitive_search=True to switch it off for this connection.
"""

import json
import logging
import os
import re
import sqlite3
import threading
import time
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List, Iterable, Sequence, Tuple

from .errors import StorageError, ConfigurationError

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 191

COLUMNS = ("id", "key", "value", "description", "created_at", "updated_at")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE CHECK (length(key) BETWEEN 1 AND {max_key}),
    description TEXT DEFAULT '',
    value TEXT,                     -- JSON payload, NULL allowed
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_{table}_key ON {table}(key);
"""


@dataclass
class SettingRecord:
    """One row of the settings table."""
    key: str
    value: Any = None
    description: Optional[str] = None
    created_at: Optional[float] = None
    updated_at: Optional[float] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


Entry = Tuple[str, Any, Optional[str]]


class BackingStore:
    """
    Contract every persistence engine must satisfy.

    Implementations raise StorageError for any connectivity or query
    failure; they never swallow errors.
    """

    @property
    def identity(self) -> str:
        """Stable name of the concrete table/database, used for namespacing."""
        raise NotImplementedError

    def is_ready(self) -> bool:
        """True once the table exists."""
        raise NotImplementedError

    def get(self, key: str) -> Optional[SettingRecord]:
        raise NotImplementedError

    def upsert(self, key: str, value: Any, description: Optional[str] = None) -> SettingRecord:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def bulk_upsert(self, entries: Sequence[Entry]) -> List[SettingRecord]:
        raise NotImplementedError

    def list_all(self, columns: Optional[Iterable[str]] = None) -> List[SettingRecord]:
        raise NotImplementedError

    def search(self, pattern: str) -> List[SettingRecord]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class SQLiteBackingStore(BackingStore):
    """
    SQLite-backed settings table.

    One shared connection (check_same_thread=False) guarded by a lock:
    sqlite3 connections must not be used by two threads at once.
    `timeout` is the busy timeout, i.e. the deadline for lock waits.
    """

    def __init__(self, db_path: str = "settings.db", table: str = "settings",
                 timeout: float = 10.0, case_sensitive_search: bool = False,
                 create_schema: bool = True):
        if not _IDENTIFIER.match(table or ""):
            raise ConfigurationError(f"Invalid settings table name: {table!r}")

        self.db_path = db_path
        self.table = table
        self.timeout = timeout
        self.case_sensitive_search = case_sensitive_search
        self._lock = threading.Lock()

        if db_path != ":memory:":
            db_dir = os.path.dirname(os.path.abspath(db_path))
            os.makedirs(db_dir, exist_ok=True)

        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False, timeout=timeout)
            self._conn.row_factory = sqlite3.Row
            if db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            if case_sensitive_search:
                self._conn.execute("PRAGMA case_sensitive_like=ON")
            if create_schema:
                self._init_schema()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open settings database {db_path}: {e}") from e

        logger.info(f"SQLiteBackingStore initialized (db={db_path}, table={table})")

    def _init_schema(self):
        """Create the table if it doesn't exist."""
        self._conn.executescript(SCHEMA.format(table=self.table, max_key=MAX_KEY_LENGTH))
        self._conn.commit()

    @property
    def identity(self) -> str:
        if self.db_path == ":memory:":
            # every in-memory connection is its own database
            return f"sqlite::memory:{id(self):x}#{self.table}"
        return f"sqlite:{os.path.abspath(self.db_path)}#{self.table}"

    def is_ready(self) -> bool:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                    (self.table,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning(f"Readiness check failed for {self.table}: {e}")
            return False
        return row is not None

    # ── Point operations ─────────────────────────────────────────

    def get(self, key: str) -> Optional[SettingRecord]:
        try:
            with self._lock:
                row = self._conn.execute(
                    f"SELECT * FROM {self.table} WHERE key = ? LIMIT 1", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Lookup of {key!r} failed: {e}") from e
        return self._row_to_record(row) if row else None

    def upsert(self, key: str, value: Any, description: Optional[str] = None) -> SettingRecord:
        payload = _encode(key, value)
        with self._lock:
            try:
                record = self._upsert_row(key, payload, description, time.time())
                self._conn.commit()
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(f"Upsert of {key!r} failed: {e}") from e
        logger.debug(f"Upserted setting {key}")
        return record

    def delete(self, key: str) -> bool:
        with self._lock:
            try:
                cursor = self._conn.execute(f"DELETE FROM {self.table} WHERE key = ?", (key,))
                self._conn.commit()
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(f"Delete of {key!r} failed: {e}") from e
        return cursor.rowcount > 0

    # ── Bulk operations ──────────────────────────────────────────

    def bulk_upsert(self, entries: Sequence[Entry]) -> List[SettingRecord]:
        """Apply every entry in one transaction. Any failure rolls back all of them."""
        # Serialize first so an unencodable value aborts before any write
        encoded = [(key, _encode(key, value), description) for key, value, description in entries]
        if not encoded:
            return []

        now = time.time()
        records = []
        with self._lock:
            try:
                for key, payload, description in encoded:
                    records.append(self._upsert_row(key, payload, description, now))
                self._conn.commit()
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(f"Batch upsert of {len(encoded)} settings failed: {e}") from e

        logger.debug(f"Batch upserted {len(records)} settings")
        return records

    def list_all(self, columns: Optional[Iterable[str]] = None) -> List[SettingRecord]:
        """List every record, optionally projected to a subset of columns."""
        projection = "*"
        if columns:
            wanted = list(dict.fromkeys(columns))
            unknown = [c for c in wanted if c not in COLUMNS]
            if unknown:
                raise StorageError(f"Unknown settings columns: {', '.join(unknown)}")
            if "key" not in wanted:
                wanted.insert(0, "key")
            projection = ", ".join(wanted)

        try:
            with self._lock:
                rows = self._conn.execute(
                    f"SELECT {projection} FROM {self.table} ORDER BY id"
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Listing settings failed: {e}") from e
        return [self._row_to_record(r) for r in rows]

    def search(self, pattern: str) -> List[SettingRecord]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    f"SELECT * FROM {self.table} WHERE key LIKE ? ORDER BY key", (pattern,)
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Search for {pattern!r} failed: {e}") from e
        return [self._row_to_record(r) for r in rows]

    # ── Helpers ──────────────────────────────────────────────────

    def _rollback(self) -> None:
        # the caller raises StorageError for the original failure
        try:
            self._conn.rollback()
        except sqlite3.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def _upsert_row(self, key: str, payload: Optional[str], description: Optional[str],
                    timestamp: float) -> SettingRecord:
        """Insert or update one row. Caller holds the lock and commits."""
        self._conn.execute(
            f"""INSERT INTO {self.table} (key, value, description, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    description = excluded.description,
                    updated_at = excluded.updated_at""",
            (key, payload, description or "", timestamp, timestamp),
        )
        row = self._conn.execute(
            f"SELECT * FROM {self.table} WHERE key = ?", (key,)
        ).fetchone()
        return self._row_to_record(row)

    def _row_to_record(self, row) -> SettingRecord:
        """Convert a DB row to a SettingRecord."""
        d = dict(row)
        if "value" in d:
            d["value"] = _decode(d["value"])
        return SettingRecord(**d)

    def get_stats(self) -> Dict[str, Any]:
        try:
            with self._lock:
                count = self._conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]
        except sqlite3.Error as e:
            raise StorageError(f"Counting settings failed: {e}") from e
        return {"db_path": self.db_path, "table": self.table, "settings": count}

    def close(self):
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            logger.info("SQLiteBackingStore closed")

    def __repr__(self) -> str:
        return f"SQLiteBackingStore(db_path={self.db_path!r}, table={self.table!r})"


def _encode(key: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Value for {key!r} is not serializable: {e}") from e


def _decode(payload: Optional[str]) -> Any:
    if payload is None:
        return None
    try:
        return json.loads(payload)
    except (json.JSONDecodeError, TypeError):
        # Rows written by other tools may hold raw text
        return payload
