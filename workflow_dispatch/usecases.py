"""Public entry points, each built as a contract-checked use case.

Every entry point takes an :class:`AppContext` and a raw input mapping and
returns a result; nothing here raises for expected failures.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any

from workflow_dispatch.catalog import ModuleCatalog
from workflow_dispatch.contracts import build_use_case
from workflow_dispatch.identity import IdentityLookup
from workflow_dispatch.models import ModuleDescriptor, TaskStatus, TriggerType, WorkflowRequest
from workflow_dispatch.results import ErrorKind, Ok, Result, fail
from workflow_dispatch.scheduler import TaskDispatcher
from workflow_dispatch.schemas import (
    ChatReply,
    ChatWithModuleInput,
    CleanupExpiredSessionsInput,
    CleanupReport,
    CreateOrGetChatSessionInput,
    DeleteScheduledTaskInput,
    DispatchReportView,
    ExecuteModuleInput,
    GetChatSessionInput,
    GetUserTasksInput,
    MessageReply,
    RunScheduledTasksInput,
    ScheduleTaskInput,
    SessionView,
    TaskView,
    UpdateChatSessionInput,
    UpdateScheduledTaskInput,
)
from workflow_dispatch.sessions import ChatSessionManager
from workflow_dispatch.tasks import ScheduledTaskStore
from workflow_dispatch.workflow.base import WorkflowEngine

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    """Collaborators shared by every entry point."""

    tasks: ScheduledTaskStore
    sessions: ChatSessionManager
    catalog: ModuleCatalog
    identity: IdentityLookup
    client: WorkflowEngine
    dispatcher: TaskDispatcher


async def _schedule_task(ctx: AppContext, value: ScheduleTaskInput) -> Result[Any]:
    module = ctx.catalog.get(value.module_slug)
    if not module.success:
        return module

    profile = await ctx.identity.get_profile(value.user_id)
    if not profile.success:
        return profile

    plan = (profile.data.plan_name or "").lower()
    if not plan or plan == "free":
        LOGGER.info("User %s on plan %r tried to schedule %s", value.user_id, plan or None, value.module_slug)
        return fail(ErrorKind.PREMIUM_FEATURE, "Scheduling is a premium feature")

    return ctx.tasks.create(
        user_id=value.user_id,
        module_id=module.data.id,
        execution_time=value.body.execution_time,
        payload=value.body.input_data,
    )


async def _update_scheduled_task(ctx: AppContext, value: UpdateScheduledTaskInput) -> Result[Any]:
    return ctx.tasks.update(
        value.task_id,
        user_id=value.user_id,
        execution_time=value.body.execution_time,
    )


async def _delete_scheduled_task(ctx: AppContext, value: DeleteScheduledTaskInput) -> Result[Any]:
    found = ctx.tasks.get_by_id(value.task_id, value.user_id)
    if not found.success:
        return found
    deleted = ctx.tasks.delete(value.task_id, value.user_id)
    if not deleted.success:
        return deleted
    return Ok({"message": "Task deleted successfully"})


async def _get_user_tasks(ctx: AppContext, value: GetUserTasksInput) -> Result[Any]:
    return ctx.tasks.list_by_user(value.user_id, [TaskStatus.SCHEDULED, TaskStatus.RUNNING])


async def _run_scheduled_tasks(ctx: AppContext, value: RunScheduledTasksInput) -> Result[Any]:
    return await ctx.dispatcher.run_cycle(value.limit)


async def _execute_module(ctx: AppContext, value: ExecuteModuleInput) -> Result[Any]:
    module = _usable_module(ctx, value.module)
    if not module.success:
        return module

    payload = value.body.input
    message = payload.get("message")
    request = WorkflowRequest(
        message=message if isinstance(message, str) else None,
        context=dict(payload),
    )
    outcome = await ctx.client.execute_workflow(module.data, request, value.user.id, value.user.email)
    if not outcome.success:
        return outcome
    return Ok(outcome.data.data)


async def _chat_with_module(ctx: AppContext, value: ChatWithModuleInput) -> Result[Any]:
    module = _usable_module(ctx, value.module)
    if not module.success:
        return module

    chat_module = dataclasses.replace(module.data, trigger_type=TriggerType.CHAT)
    request = WorkflowRequest(
        message=value.body.message,
        context=dict(value.body.context),
        is_chat_mode=True,
        session_id=value.body.session_id,
    )
    outcome = await ctx.client.execute_workflow(chat_module, request, value.user.id, value.user.email)
    if not outcome.success:
        return outcome

    raw = outcome.data.raw
    return Ok(
        {
            "message": raw.get("message"),
            "next_step": raw.get("next_step") or raw.get("nextStep"),
            "options": raw.get("options") or [],
            "type": raw.get("type") or "text",
            "context": raw.get("context") or {},
            "is_complete": bool(raw.get("is_complete") or raw.get("isComplete")),
            "data": raw.get("data"),
            "output_message": outcome.data.output_message,
            "session_id": outcome.data.session_id,
        }
    )


async def _create_or_get_chat_session(ctx: AppContext, value: CreateOrGetChatSessionInput) -> Result[Any]:
    return ctx.sessions.open_session(value.user.id, value.body.module_slug)


async def _get_chat_session(ctx: AppContext, value: GetChatSessionInput) -> Result[Any]:
    return ctx.sessions.get_session(value.session_id)


async def _update_chat_session(ctx: AppContext, value: UpdateChatSessionInput) -> Result[Any]:
    current = ctx.sessions.get_session(value.session_id)
    if not current.success:
        return current
    merged = {**current.data.session_data, **value.session_data}
    return ctx.sessions.update_session_data(value.session_id, merged)


async def _cleanup_expired_sessions(ctx: AppContext, value: CleanupExpiredSessionsInput) -> Result[Any]:
    deleted = ctx.sessions.cleanup_expired()
    if not deleted.success:
        return deleted
    return Ok({"deleted": deleted.data})


def _usable_module(ctx: AppContext, id_or_slug: str) -> Result[ModuleDescriptor]:
    module = ctx.catalog.get(id_or_slug)
    if not module.success:
        return module
    if not module.data.is_active:
        return fail(ErrorKind.MODULE_INVALID, f"Module {module.data.slug} is not active")
    if not module.data.name or not module.data.slug:
        return fail(ErrorKind.MODULE_INVALID, "Module name/slug is missing")
    return module


schedule_task = build_use_case("schedule_task").input(ScheduleTaskInput).output(TaskView).handle(_schedule_task)

update_scheduled_task = (
    build_use_case("update_scheduled_task")
    .input(UpdateScheduledTaskInput)
    .output(TaskView)
    .handle(_update_scheduled_task)
)

delete_scheduled_task = (
    build_use_case("delete_scheduled_task")
    .input(DeleteScheduledTaskInput)
    .output(MessageReply)
    .handle(_delete_scheduled_task)
)

get_user_tasks = (
    build_use_case("get_user_tasks").input(GetUserTasksInput).output(list[TaskView]).handle(_get_user_tasks)
)

run_scheduled_tasks = (
    build_use_case("run_scheduled_tasks")
    .input(RunScheduledTasksInput)
    .output(DispatchReportView)
    .handle(_run_scheduled_tasks)
)

execute_module = (
    build_use_case("execute_module").input(ExecuteModuleInput).output(dict[str, Any]).handle(_execute_module)
)

chat_with_module = (
    build_use_case("chat_with_module").input(ChatWithModuleInput).output(ChatReply).handle(_chat_with_module)
)

create_or_get_chat_session = (
    build_use_case("create_or_get_chat_session")
    .input(CreateOrGetChatSessionInput)
    .output(SessionView)
    .handle(_create_or_get_chat_session)
)

get_chat_session = (
    build_use_case("get_chat_session").input(GetChatSessionInput).output(SessionView).handle(_get_chat_session)
)

update_chat_session = (
    build_use_case("update_chat_session")
    .input(UpdateChatSessionInput)
    .output(SessionView)
    .handle(_update_chat_session)
)

cleanup_expired_sessions = (
    build_use_case("cleanup_expired_sessions")
    .input(CleanupExpiredSessionsInput)
    .output(CleanupReport)
    .handle(_cleanup_expired_sessions)
)
