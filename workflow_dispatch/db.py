"""SQLite persistence layer."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

SCHEMA_VERSION = 1


class Database:
    """Small SQLite wrapper with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def connect(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and always closes.

        ``immediate`` takes the write lock up front so a read followed by a
        write in the same block cannot interleave with another writer.
        """
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self.connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                email TEXT,
                full_name TEXT,
                role TEXT,
                plan_name TEXT,
                credit_balance REAL NOT NULL DEFAULT 0,
                created_at TEXT
            );

            CREATE TABLE IF NOT EXISTS modules (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                slug TEXT NOT NULL UNIQUE,
                endpoint TEXT NOT NULL DEFAULT '',
                trigger_type TEXT,
                is_active INTEGER NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS scheduled_tasks (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                module_id TEXT NOT NULL,
                execution_time TEXT NOT NULL,
                payload TEXT NOT NULL,
                status TEXT NOT NULL CHECK (status IN ('scheduled', 'running', 'completed', 'failed')),
                started_at TEXT,
                completed_at TEXT,
                result TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_due
                ON scheduled_tasks (status, execution_time);

            CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_user
                ON scheduled_tasks (user_id, execution_time);

            CREATE TABLE IF NOT EXISTS chat_sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                module_slug TEXT NOT NULL,
                session_data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT,
                expires_at TEXT NOT NULL,
                last_activity TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_chat_sessions_pair
                ON chat_sessions (user_id, module_slug, expires_at);
            """
        )


def to_iso(value: datetime) -> str:
    """Fixed-width UTC ISO-8601 so stored timestamps compare correctly as text."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def dump_json(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value)


def load_json(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    return json.loads(raw)
