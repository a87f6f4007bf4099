"""Scheduled task store.

Status changes are single conditional updates, so two dispatch cycles racing
on the same due task cannot both claim it: the loser sees zero affected rows
and gets ``TASK_NOT_FOUND``.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any, Callable, Iterable

from workflow_dispatch.db import Database, dump_json, from_iso, load_json, to_iso
from workflow_dispatch.models import ScheduledTask, TaskStatus, utc_now
from workflow_dispatch.results import ErrorKind, Ok, Result, fail, try_catch

LOGGER = logging.getLogger(__name__)

DEFAULT_DUE_LIMIT = 10

_COLUMNS = (
    "id, user_id, module_id, execution_time, payload, status, "
    "started_at, completed_at, result, created_at, updated_at"
)


class ScheduledTaskStore:
    """Query/mutation contract over the ``scheduled_tasks`` table."""

    def __init__(self, db: Database, clock: Callable[[], datetime] = utc_now) -> None:
        self._db = db
        self._clock = clock

    def list_due(self, limit: int = DEFAULT_DUE_LIMIT) -> Result[list[ScheduledTask]]:
        """Scheduled tasks whose execution time has passed, oldest first."""

        def action() -> Result[list[ScheduledTask]]:
            with self._db.connect() as conn:
                rows = conn.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM scheduled_tasks
                    WHERE status = ? AND execution_time <= ?
                    ORDER BY execution_time ASC, created_at ASC
                    LIMIT ?
                    """,
                    (TaskStatus.SCHEDULED.value, to_iso(self._clock()), max(int(limit), 0)),
                ).fetchall()
            return Ok([_to_task(row) for row in rows])

        return self._guarded("list_due", action)

    def mark_running(self, task_id: str) -> Result[ScheduledTask]:
        return self._transition(task_id, TaskStatus.SCHEDULED, TaskStatus.RUNNING)

    def mark_completed(self, task_id: str, result: dict[str, Any]) -> Result[ScheduledTask]:
        return self._transition(task_id, TaskStatus.RUNNING, TaskStatus.COMPLETED, result)

    def mark_failed(self, task_id: str, result: dict[str, Any]) -> Result[ScheduledTask]:
        return self._transition(task_id, TaskStatus.RUNNING, TaskStatus.FAILED, result)

    def get_by_id(self, task_id: str, user_id: str | None = None) -> Result[ScheduledTask]:
        def action() -> Result[ScheduledTask]:
            with self._db.connect() as conn:
                row = self._select_one(conn, task_id, user_id)
            if row is None:
                return _not_found(task_id)
            return Ok(_to_task(row))

        return self._guarded("get_by_id", action)

    def create(
        self,
        user_id: str,
        module_id: str,
        execution_time: datetime,
        payload: dict[str, Any],
    ) -> Result[ScheduledTask]:
        task_id = str(uuid.uuid4())
        now = to_iso(self._clock())

        def action() -> Result[ScheduledTask]:
            with self._db.connect() as conn:
                conn.execute(
                    f"""
                    INSERT INTO scheduled_tasks({_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, NULL, NULL, NULL, ?, ?)
                    """,
                    (
                        task_id,
                        user_id,
                        module_id,
                        to_iso(execution_time),
                        dump_json(payload),
                        TaskStatus.SCHEDULED.value,
                        now,
                        now,
                    ),
                )
                row = self._select_one(conn, task_id)
            LOGGER.info("Scheduled task %s for module %s at %s", task_id, module_id, to_iso(execution_time))
            return Ok(_to_task(row))

        return self._guarded("create", action)

    def update(
        self,
        task_id: str,
        user_id: str | None = None,
        execution_time: datetime | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Result[ScheduledTask]:
        """Edit a task that has not been dispatched yet.

        Status is never writable here; only the dispatch transitions move it.
        """

        def action() -> Result[ScheduledTask]:
            assignments: list[str] = ["updated_at = ?"]
            params: list[Any] = [to_iso(self._clock())]
            if execution_time is not None:
                assignments.append("execution_time = ?")
                params.append(to_iso(execution_time))
            if payload is not None:
                assignments.append("payload = ?")
                params.append(dump_json(payload))

            with self._db.connect(immediate=True) as conn:
                row = self._select_one(conn, task_id, user_id)
                if row is None:
                    return _not_found(task_id)
                if row["status"] != TaskStatus.SCHEDULED.value:
                    return fail(
                        ErrorKind.INVALID_TRANSITION,
                        f"Task {task_id} is {row['status']} and can no longer be edited",
                    )
                conn.execute(
                    f"UPDATE scheduled_tasks SET {', '.join(assignments)} WHERE id = ? AND status = ?",
                    (*params, task_id, TaskStatus.SCHEDULED.value),
                )
                updated = self._select_one(conn, task_id)
            return Ok(_to_task(updated))

        return self._guarded("update", action)

    def delete(self, task_id: str, user_id: str) -> Result[None]:
        def action() -> Result[None]:
            with self._db.connect() as conn:
                cur = conn.execute(
                    "DELETE FROM scheduled_tasks WHERE id = ? AND user_id = ?",
                    (task_id, user_id),
                )
            if cur.rowcount == 0:
                return _not_found(task_id)
            LOGGER.info("Deleted task %s for user %s", task_id, user_id)
            return Ok(None)

        return self._guarded("delete", action)

    def list_by_user(
        self,
        user_id: str,
        statuses: Iterable[TaskStatus] | None = None,
    ) -> Result[list[ScheduledTask]]:
        def action() -> Result[list[ScheduledTask]]:
            query = f"SELECT {_COLUMNS} FROM scheduled_tasks WHERE user_id = ?"
            params: list[Any] = [user_id]
            wanted = [TaskStatus(status).value for status in statuses or ()]
            if wanted:
                query += f" AND status IN ({', '.join('?' for _ in wanted)})"
                params.extend(wanted)
            query += " ORDER BY execution_time ASC"
            with self._db.connect() as conn:
                rows = conn.execute(query, params).fetchall()
            return Ok([_to_task(row) for row in rows])

        return self._guarded("list_by_user", action)

    def _transition(
        self,
        task_id: str,
        source: TaskStatus,
        target: TaskStatus,
        result: dict[str, Any] | None = None,
    ) -> Result[ScheduledTask]:
        if not source.can_transition(target):
            return fail(ErrorKind.INVALID_TRANSITION, f"{source.value} -> {target.value} is not allowed")

        def action() -> Result[ScheduledTask]:
            now = to_iso(self._clock())
            if target is TaskStatus.RUNNING:
                assignments, params = "started_at = ?, updated_at = ?", (now, now)
            else:
                # Serialized here so an unencodable result comes back as an Err.
                assignments = "completed_at = ?, result = ?, updated_at = ?"
                params = (now, dump_json(result), now)
            with self._db.connect() as conn:
                cur = conn.execute(
                    f"UPDATE scheduled_tasks SET status = ?, {assignments} WHERE id = ? AND status = ?",
                    (target.value, *params, task_id, source.value),
                )
                if cur.rowcount == 0:
                    return fail(
                        ErrorKind.TASK_NOT_FOUND,
                        f"Task {task_id} not found or no longer {source.value}",
                    )
                row = self._select_one(conn, task_id)
            LOGGER.info("Task %s: %s -> %s", task_id, source.value, target.value)
            return Ok(_to_task(row))

        return self._guarded(f"mark_{target.value}", action)

    @staticmethod
    def _select_one(conn: sqlite3.Connection, task_id: str, user_id: str | None = None) -> sqlite3.Row | None:
        query = f"SELECT {_COLUMNS} FROM scheduled_tasks WHERE id = ?"
        params: list[Any] = [task_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        return conn.execute(query, params).fetchone()

    @staticmethod
    def _guarded(operation: str, action: Callable[[], Result[Any]]) -> Result[Any]:
        result = try_catch(action)
        if not result.success and result.kind == ErrorKind.UNKNOWN_ERROR:
            LOGGER.error("[%s] task store failure: %s", operation, result.message)
        return result


def _not_found(task_id: str) -> Result[Any]:
    return fail(ErrorKind.TASK_NOT_FOUND, f"Task not found id={task_id}")


def _to_task(row: sqlite3.Row) -> ScheduledTask:
    return ScheduledTask(
        id=row["id"],
        user_id=row["user_id"],
        module_id=row["module_id"],
        execution_time=from_iso(row["execution_time"]),
        payload=load_json(row["payload"]) or {},
        status=TaskStatus(row["status"]),
        started_at=from_iso(row["started_at"]),
        completed_at=from_iso(row["completed_at"]),
        result=load_json(row["result"]),
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )
