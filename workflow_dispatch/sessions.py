"""Short-lived conversational state keyed by (user, module)."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable

from workflow_dispatch.db import Database, dump_json, from_iso, load_json, to_iso
from workflow_dispatch.models import ChatSession, utc_now
from workflow_dispatch.results import ErrorKind, Ok, Result, fail, try_catch

LOGGER = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(hours=24)
DEFAULT_MAX_TURNS = 50
# Session data key holding turn history recorded by the workflow client.
CONVERSATION_KEY = "conversation"

_COLUMNS = "id, user_id, module_slug, session_data, created_at, updated_at, expires_at, last_activity"


class ChatSessionManager:
    """Lifecycle of chat sessions stored in ``chat_sessions``.

    ``find_active_session`` followed by ``create_session`` is not atomic and
    two concurrent first turns can both create a session; lookups always pick
    the newest active row so the outcome stays deterministic. ``open_session``
    does the find-or-create under one write lock.
    """

    def __init__(
        self,
        db: Database,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._ttl = ttl
        self._clock = clock

    def find_active_session(self, user_id: str, module_slug: str) -> Result[ChatSession]:
        def action() -> Result[ChatSession]:
            with self._db.connect() as conn:
                row = self._select_active(conn, user_id, module_slug)
            if row is None:
                return _session_not_found(f"No active session for user={user_id} module={module_slug}")
            return Ok(_to_session(row))

        return self._guarded("find_active_session", action)

    def create_session(self, user_id: str, module_slug: str) -> Result[ChatSession]:
        def action() -> Result[ChatSession]:
            with self._db.connect() as conn:
                row = self._insert(conn, user_id, module_slug)
            return Ok(_to_session(row))

        return self._guarded("create_session", action)

    def open_session(self, user_id: str, module_slug: str) -> Result[ChatSession]:
        """Return the active session for the pair, creating one if needed."""

        def action() -> Result[ChatSession]:
            with self._db.connect(immediate=True) as conn:
                row = self._select_active(conn, user_id, module_slug)
                if row is None:
                    row = self._insert(conn, user_id, module_slug)
                else:
                    now = to_iso(self._clock())
                    conn.execute(
                        "UPDATE chat_sessions SET last_activity = ?, updated_at = ? WHERE id = ?",
                        (now, now, row["id"]),
                    )
                    row = self._select_by_id(conn, row["id"])
            return Ok(_to_session(row))

        return self._guarded("open_session", action)

    def update_session_data(self, session_id: str, session_data: dict[str, Any]) -> Result[ChatSession]:
        """Replace the stored conversation state and bump ``last_activity``."""

        def action() -> Result[ChatSession]:
            now = to_iso(self._clock())
            with self._db.connect() as conn:
                cur = conn.execute(
                    """
                    UPDATE chat_sessions
                    SET session_data = ?, last_activity = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (dump_json(session_data), now, now, session_id),
                )
                if cur.rowcount == 0:
                    return _session_not_found(f"Session not found: session_id={session_id}")
                row = self._select_by_id(conn, session_id)
            return Ok(_to_session(row))

        return self._guarded("update_session_data", action)

    def append_turn(
        self,
        session_id: str,
        turn: dict[str, Any],
        context: dict[str, Any] | None = None,
        last_output: dict[str, Any] | None = None,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> Result[ChatSession]:
        """Record one conversational turn under ``CONVERSATION_KEY``.

        The read and write share one write lock, so overlapping turns and
        concurrent ``update_session_data`` merges are not lost. Whatever else
        the session data holds is left untouched; a malformed conversation
        entry is replaced.
        """

        def action() -> Result[ChatSession]:
            now = to_iso(self._clock())
            with self._db.connect(immediate=True) as conn:
                row = self._select_by_id(conn, session_id)
                if row is None:
                    return _session_not_found(f"Session not found: session_id={session_id}")
                data = load_json(row["session_data"])
                if not isinstance(data, dict):
                    data = {}
                conversation = data.get(CONVERSATION_KEY)
                if not isinstance(conversation, dict):
                    conversation = {}
                turns = conversation.get("turns")
                turns = list(turns) if isinstance(turns, list) else []
                turns.append(turn)
                stored_context = conversation.get("context")
                stored_context = dict(stored_context) if isinstance(stored_context, dict) else {}
                stored_context.update(context or {})
                data[CONVERSATION_KEY] = {
                    **conversation,
                    "turns": turns[-max_turns:],
                    "context": stored_context,
                    "last_output": last_output,
                }
                conn.execute(
                    """
                    UPDATE chat_sessions
                    SET session_data = ?, last_activity = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (dump_json(data), now, now, session_id),
                )
                row = self._select_by_id(conn, session_id)
            return Ok(_to_session(row))

        return self._guarded("append_turn", action)

    def get_session(self, session_id: str) -> Result[ChatSession]:
        def action() -> Result[ChatSession]:
            with self._db.connect() as conn:
                row = self._select_by_id(conn, session_id)
            if row is None:
                return _session_not_found(f"Session not found: session_id={session_id}")
            return Ok(_to_session(row))

        return self._guarded("get_session", action)

    def cleanup_expired(self) -> Result[int | None]:
        """Delete expired sessions.

        The count is best-effort telemetry: ``None`` when the driver cannot
        report how many rows went away.
        """

        def action() -> Result[int | None]:
            with self._db.connect() as conn:
                cur = conn.execute(
                    "DELETE FROM chat_sessions WHERE expires_at < ?",
                    (to_iso(self._clock()),),
                )
            deleted = cur.rowcount if cur.rowcount >= 0 else None
            LOGGER.info("Expired chat sessions cleaned (deleted=%s)", deleted)
            return Ok(deleted)

        return self._guarded("cleanup_expired", action)

    def _select_active(self, conn: sqlite3.Connection, user_id: str, module_slug: str) -> sqlite3.Row | None:
        return conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM chat_sessions
            WHERE user_id = ? AND module_slug = ? AND expires_at > ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (user_id, module_slug, to_iso(self._clock())),
        ).fetchone()

    @staticmethod
    def _select_by_id(conn: sqlite3.Connection, session_id: str) -> sqlite3.Row | None:
        return conn.execute(f"SELECT {_COLUMNS} FROM chat_sessions WHERE id = ?", (session_id,)).fetchone()

    def _insert(self, conn: sqlite3.Connection, user_id: str, module_slug: str) -> sqlite3.Row:
        session_id = str(uuid.uuid4())
        created_at = self._clock()
        conn.execute(
            f"""
            INSERT INTO chat_sessions({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, NULL)
            """,
            (
                session_id,
                user_id,
                module_slug,
                dump_json({}),
                to_iso(created_at),
                to_iso(created_at),
                to_iso(created_at + self._ttl),
            ),
        )
        LOGGER.info("Created chat session %s for user=%s module=%s", session_id, user_id, module_slug)
        return self._select_by_id(conn, session_id)

    @staticmethod
    def _guarded(operation: str, action: Callable[[], Result[Any]]) -> Result[Any]:
        result = try_catch(action)
        if not result.success and result.kind == ErrorKind.UNKNOWN_ERROR:
            LOGGER.error("[%s] chat session store failure: %s", operation, result.message)
        return result


def _session_not_found(message: str) -> Result[Any]:
    return fail(ErrorKind.SESSION_NOT_FOUND, message)


def _to_session(row: sqlite3.Row) -> ChatSession:
    return ChatSession(
        id=row["id"],
        user_id=row["user_id"],
        module_slug=row["module_slug"],
        session_data=load_json(row["session_data"]) or {},
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
        expires_at=from_iso(row["expires_at"]),
        last_activity=from_iso(row["last_activity"]),
    )
