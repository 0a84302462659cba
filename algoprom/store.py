"""Audit store — ordered, durable log of every check and action outcome.

Layout (one ordered key/value table, bucketed like a nested KV engine):

    checks/<check name>   <ts key>                  → Output JSON
    actions               <check>_<action>_<ts key> → Output JSON

``<ts key>`` is ``<unix seconds>.<microseconds>``; it sorts
chronologically and is derived from the run's start time, so persisting
the same run again overwrites its own record.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path

from algoprom.checks.definitions import ActionMeta
from algoprom.checks.output import Output
from algoprom.errors import StoreError

logger = logging.getLogger(__name__)

DB_PATH = Path("data") / "algoprom.db"

CHECKS_BUCKET = "checks"
ACTIONS_BUCKET = "actions"


def timestamp_key(output: Output) -> str:
    """Collision-free, lexicographically ordered key for a run."""
    ts = output.timestamp
    return f"{int(ts.timestamp()):d}.{ts.microsecond:06d}"


def _check_bucket(name: str) -> str:
    return f"{CHECKS_BUCKET}/{name}"


class AuditStore:
    """SQLite-backed audit log, safe to share between tasks and threads."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path) if db_path else DB_PATH
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute("""
                CREATE TABLE IF NOT EXISTS audit (
                    bucket TEXT NOT NULL,
                    key    TEXT NOT NULL,
                    value  TEXT NOT NULL,
                    PRIMARY KEY (bucket, key)
                )
            """)
            conn.commit()

    # ── Low-level KV ─────────────────────────────────────────────────────

    def _put(self, bucket: str, key: str, output: Output) -> None:
        value = json.dumps(output.to_dict())
        try:
            with self._lock:
                conn = self._get_conn()
                conn.execute(
                    "INSERT OR REPLACE INTO audit (bucket, key, value) VALUES (?, ?, ?)",
                    (bucket, key, value),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write {bucket}/{key}: {e}") from e

    def _get(self, bucket: str, key: str) -> Output | None:
        try:
            with self._lock:
                row = self._get_conn().execute(
                    "SELECT value FROM audit WHERE bucket = ? AND key = ?", (bucket, key),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {bucket}/{key}: {e}") from e
        return _decode(row[0], key) if row else None

    def _query(self, sql: str, args: tuple) -> list[tuple]:
        try:
            with self._lock:
                return self._get_conn().execute(sql, args).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Audit query failed: {e}") from e

    # ── Checks ───────────────────────────────────────────────────────────

    def put_check(self, check_name: str, output: Output) -> str:
        """Persist a check output. Returns its key."""
        key = timestamp_key(output)
        self._put(_check_bucket(check_name), key, output)
        return key

    def get_check(self, check_name: str, key: str) -> Output | None:
        return self._get(_check_bucket(check_name), key)

    def list_check_names(self) -> list[str]:
        """Names of every check with at least one stored output."""
        prefix = _check_bucket("")
        rows = self._query(
            "SELECT DISTINCT bucket FROM audit "
            "WHERE substr(bucket, 1, ?) = ? ORDER BY bucket",
            (len(prefix), prefix),
        )
        return [r[0][len(prefix):] for r in rows]

    def list_check_outputs(self, check_name: str, limit: int = 100) -> list[tuple[str, Output]]:
        """Up to ``limit`` (key, output) pairs, oldest first."""
        if limit <= 0:
            return []
        rows = self._query(
            "SELECT key, value FROM audit WHERE bucket = ? ORDER BY key LIMIT ?",
            (_check_bucket(check_name), limit),
        )
        return [(k, _decode(v, k)) for k, v in rows]

    def latest_check(self, check_name: str) -> tuple[str, Output] | None:
        rows = self._query(
            "SELECT key, value FROM audit WHERE bucket = ? ORDER BY key DESC LIMIT 1",
            (_check_bucket(check_name),),
        )
        return (rows[0][0], _decode(rows[0][1], rows[0][0])) if rows else None

    # ── Actions ──────────────────────────────────────────────────────────

    def put_action(self, check_name: str, action: ActionMeta, output: Output) -> str:
        """Persist an action output. Returns its key."""
        key = f"{check_name}_{action.name}_{timestamp_key(output)}"
        self._put(ACTIONS_BUCKET, key, output)
        return key

    def get_action(self, key: str) -> Output | None:
        return self._get(ACTIONS_BUCKET, key)

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None


def _decode(value: str, key: str) -> Output:
    try:
        return Output.from_dict(json.loads(value))
    except (ValueError, KeyError) as e:
        raise StoreError(f"Corrupt record {key}: {e}") from e
