"""Async dispatcher for due scheduled tasks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from workflow_dispatch.catalog import ModuleCatalog
from workflow_dispatch.models import ScheduledTask, WorkflowRequest
from workflow_dispatch.results import Err, ErrorKind, Ok, Result, kind_name
from workflow_dispatch.sessions import ChatSessionManager
from workflow_dispatch.tasks import DEFAULT_DUE_LIMIT, ScheduledTaskStore
from workflow_dispatch.workflow.base import WorkflowEngine

LOGGER = logging.getLogger(__name__)


class _Disposition(str, Enum):
    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class DispatchReport:
    """Counts for one dispatch cycle."""

    selected: int = 0
    skipped: int = 0
    completed: int = 0
    failed: int = 0


class TaskDispatcher:
    """Polls due tasks and runs each one through the workflow engine."""

    def __init__(
        self,
        tasks: ScheduledTaskStore,
        catalog: ModuleCatalog,
        client: WorkflowEngine,
        batch_size: int = DEFAULT_DUE_LIMIT,
        poll_interval_seconds: float = 60.0,
        sessions: ChatSessionManager | None = None,
        session_cleanup_every_cycles: int = 60,
    ) -> None:
        self._tasks = tasks
        self._catalog = catalog
        self._client = client
        self._batch_size = batch_size
        self._poll_interval_seconds = poll_interval_seconds
        self._sessions = sessions
        self._session_cleanup_every_cycles = max(session_cleanup_every_cycles, 1)
        self._stop_event = asyncio.Event()

    async def run_cycle(self, limit: int | None = None) -> Result[DispatchReport]:
        """Claim and execute up to ``limit`` due tasks concurrently."""

        due = self._tasks.list_due(self._batch_size if limit is None else limit)
        if not due.success:
            LOGGER.error("Could not list due tasks: %s", due.message)
            return due

        report = DispatchReport(selected=len(due.data))
        if not due.data:
            return Ok(report)

        LOGGER.info("Dispatching %d due task(s)", report.selected)
        dispositions = await asyncio.gather(*(self._dispatch(task) for task in due.data))
        for disposition in dispositions:
            if disposition is _Disposition.SKIPPED:
                report.skipped += 1
            elif disposition is _Disposition.COMPLETED:
                report.completed += 1
            else:
                report.failed += 1
        LOGGER.info(
            "Dispatch cycle done: selected=%d completed=%d failed=%d skipped=%d",
            report.selected,
            report.completed,
            report.failed,
            report.skipped,
        )
        return Ok(report)

    async def run_forever(self) -> None:
        """Run dispatch loop until stop() is called."""

        cycle = 0
        while not self._stop_event.is_set():
            cycle += 1
            try:
                await self.run_cycle()
                if self._sessions is not None and cycle % self._session_cleanup_every_cycles == 0:
                    self._sessions.cleanup_expired()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Dispatch cycle %d crashed", cycle)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval_seconds)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        """Signal the loop to stop."""

        self._stop_event.set()

    async def _dispatch(self, task: ScheduledTask) -> _Disposition:
        claimed = self._tasks.mark_running(task.id)
        if not claimed.success:
            if claimed.kind == ErrorKind.TASK_NOT_FOUND:
                LOGGER.info("Task %s already claimed or removed, skipping", task.id)
            else:
                LOGGER.error("Could not claim task %s: %s", task.id, claimed.message)
            return _Disposition.SKIPPED

        outcome = await self._execute(task)
        if outcome.success:
            marked = self._tasks.mark_completed(task.id, outcome.data.data)
            disposition = _Disposition.COMPLETED
            if not marked.success and marked.kind != ErrorKind.TASK_NOT_FOUND:
                LOGGER.error("Could not store result of task %s: %s", task.id, marked.message)
                outcome = Err(kind=marked.kind, error=marked.error)
        if not outcome.success:
            LOGGER.warning("Task %s failed with %s: %s", task.id, kind_name(outcome.kind), outcome.message)
            marked = self._tasks.mark_failed(
                task.id,
                {"kind": kind_name(outcome.kind), "message": outcome.message},
            )
            disposition = _Disposition.FAILED
        if not marked.success:
            # Remote work already ran; the task is left in its current state.
            LOGGER.error("Could not record final state of task %s: %s", task.id, marked.message)
        return disposition

    async def _execute(self, task: ScheduledTask) -> Result:
        module = self._catalog.get(task.module_id)
        if not module.success:
            return module
        request = WorkflowRequest(context=dict(task.payload), message=task.payload.get("message"))
        try:
            return await self._client.execute_workflow(module.data, request, task.user_id)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Workflow engine raised for task %s", task.id)
            return Err(kind=ErrorKind.EXECUTION_ERROR, error=exc)
