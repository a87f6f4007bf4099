from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from workflow_dispatch.catalog import ModuleCatalog
from workflow_dispatch.db import Database
from workflow_dispatch.identity import DatabaseIdentityLookup
from workflow_dispatch.models import ModuleDescriptor, TaskStatus, TriggerType, UserProfile
from workflow_dispatch.results import ErrorKind, Ok, fail
from workflow_dispatch.scheduler import TaskDispatcher
from workflow_dispatch.schemas import ChatReply, SessionView, TaskView
from workflow_dispatch.sessions import ChatSessionManager
from workflow_dispatch.tasks import ScheduledTaskStore
from workflow_dispatch.usecases import (
    AppContext,
    chat_with_module,
    cleanup_expired_sessions,
    create_or_get_chat_session,
    delete_scheduled_task,
    execute_module,
    get_chat_session,
    get_user_tasks,
    run_scheduled_tasks,
    schedule_task,
    update_chat_session,
    update_scheduled_task,
)
from workflow_dispatch.workflow.outcome import parse_outcome

WRITER = ModuleDescriptor(id="mod-1", name="Article Writer", slug="article-writer", endpoint="https://e/hook")


def _ctx(tmp_path, client=None) -> AppContext:  # noqa: ANN001
    db = Database(tmp_path / "dispatch.db")
    db.initialize()
    catalog = ModuleCatalog(db)
    catalog.upsert(WRITER)
    catalog.upsert(ModuleDescriptor(id="mod-off", name="Old", slug="old", endpoint="https://e/old", is_active=False))
    identity = DatabaseIdentityLookup(db)
    identity.upsert_profile(UserProfile(id="pro", email="pro@example.com", plan_name="Premium"))
    identity.upsert_profile(UserProfile(id="free", email="free@example.com", plan_name="FREE"))
    identity.upsert_profile(UserProfile(id="noplan", email="noplan@example.com"))
    tasks = ScheduledTaskStore(db)
    if client is None:
        client = MagicMock()
        client.execute_workflow = AsyncMock()
    return AppContext(
        tasks=tasks,
        sessions=ChatSessionManager(db),
        catalog=catalog,
        identity=identity,
        client=client,
        dispatcher=TaskDispatcher(tasks, catalog, client),
    )


def _future(hours=1) -> str:  # noqa: ANN001
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


def _schedule_input(user_id="pro", when=None):  # noqa: ANN001, ANN201
    return {
        "user_id": user_id,
        "module_slug": "article-writer",
        "body": {"input_data": {"topic": "tides"}, "execution_time": when or _future()},
    }


@pytest.mark.asyncio
async def test_schedule_task_creates_scheduled_task(tmp_path):
    ctx = _ctx(tmp_path)

    result = await schedule_task(ctx, _schedule_input())

    assert result.success
    assert isinstance(result.data, TaskView)
    assert result.data.status is TaskStatus.SCHEDULED
    assert result.data.module_id == "mod-1"
    assert result.data.payload == {"topic": "tides"}


@pytest.mark.asyncio
async def test_schedule_task_rejects_past_time(tmp_path):
    ctx = _ctx(tmp_path)

    result = await schedule_task(ctx, _schedule_input(when=_future(hours=-1)))

    assert result.kind == ErrorKind.VALIDATION_ERROR


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id", ["free", "noplan"])
async def test_schedule_task_is_premium_only(tmp_path, user_id):
    ctx = _ctx(tmp_path)

    result = await schedule_task(ctx, _schedule_input(user_id=user_id))

    assert result.kind == ErrorKind.PREMIUM_FEATURE


@pytest.mark.asyncio
async def test_schedule_task_unknown_module_and_profile(tmp_path):
    ctx = _ctx(tmp_path)
    unknown_module = {**_schedule_input(), "module_slug": "nope"}

    assert (await schedule_task(ctx, unknown_module)).kind == ErrorKind.MODULE_NOT_FOUND
    assert (await schedule_task(ctx, _schedule_input(user_id="ghost"))).kind == ErrorKind.PROFILE_NOT_FOUND


@pytest.mark.asyncio
async def test_update_delete_and_list_tasks(tmp_path):
    ctx = _ctx(tmp_path)
    created = (await schedule_task(ctx, _schedule_input())).data
    new_time = datetime.now(timezone.utc) + timedelta(days=2)

    updated = await update_scheduled_task(
        ctx,
        {"user_id": "pro", "task_id": created.id, "body": {"execution_time": new_time.isoformat()}},
    )
    assert updated.success
    assert updated.data.execution_time == new_time

    listed = await get_user_tasks(ctx, {"user_id": "pro"})
    assert [task.id for task in listed.data] == [created.id]

    wrong_owner = await delete_scheduled_task(ctx, {"user_id": "free", "task_id": created.id})
    assert wrong_owner.kind == ErrorKind.TASK_NOT_FOUND

    deleted = await delete_scheduled_task(ctx, {"user_id": "pro", "task_id": created.id})
    assert deleted.data.message == "Task deleted successfully"
    assert (await get_user_tasks(ctx, {"user_id": "pro"})).data == []


@pytest.mark.asyncio
async def test_run_scheduled_tasks_validates_limit(tmp_path):
    ctx = _ctx(tmp_path)

    assert (await run_scheduled_tasks(ctx, {"limit": 11})).kind == ErrorKind.VALIDATION_ERROR
    assert (await run_scheduled_tasks(ctx, {"limit": 0})).kind == ErrorKind.VALIDATION_ERROR

    report = await run_scheduled_tasks(ctx, {})
    assert report.success
    assert report.data.selected == 0


@pytest.mark.asyncio
async def test_execute_module_returns_outcome_data(tmp_path):
    client = MagicMock()
    client.execute_workflow = AsyncMock(return_value=Ok(parse_outcome({"output": "Draft ready"})))
    ctx = _ctx(tmp_path, client)

    result = await execute_module(
        ctx,
        {"module": "article-writer", "user": {"id": "pro", "email": "pro@example.com"}, "body": {"input": {"k": 1}}},
    )

    assert result.data == {"output": "Draft ready", "output_message": "Draft ready"}
    module, request, user_id, email = client.execute_workflow.await_args.args
    assert module.slug == "article-writer"
    assert request.context == {"k": 1}
    assert (user_id, email) == ("pro", "pro@example.com")


@pytest.mark.asyncio
async def test_execute_inactive_module_is_invalid(tmp_path):
    ctx = _ctx(tmp_path)

    result = await execute_module(ctx, {"module": "old", "user": {"id": "pro"}})

    assert result.kind == ErrorKind.MODULE_INVALID
    ctx.client.execute_workflow.assert_not_awaited()


@pytest.mark.asyncio
async def test_chat_with_module_shapes_reply(tmp_path):
    outcome = parse_outcome(
        {
            "message": "Which audience?",
            "nextStep": "audience",
            "options": ["devs", "managers"],
            "isComplete": False,
        }
    )
    outcome.session_id = "sess-1"
    client = MagicMock()
    client.execute_workflow = AsyncMock(return_value=Ok(outcome))
    ctx = _ctx(tmp_path, client)

    result = await chat_with_module(
        ctx,
        {"module": "mod-1", "user": {"id": "pro"}, "body": {"message": "hello", "context": {"lang": "en"}}},
    )

    assert isinstance(result.data, ChatReply)
    assert result.data.message == "Which audience?"
    assert result.data.next_step == "audience"
    assert result.data.options == ["devs", "managers"]
    assert result.data.type == "text"
    assert result.data.is_complete is False
    assert result.data.session_id == "sess-1"
    module, request, _, _ = client.execute_workflow.await_args.args
    assert module.trigger_type is TriggerType.CHAT
    assert request.is_chat_mode is True
    assert request.message == "hello"


@pytest.mark.asyncio
async def test_chat_with_module_propagates_engine_failure(tmp_path):
    client = MagicMock()
    client.execute_workflow = AsyncMock(return_value=fail(ErrorKind.TIMEOUT, "slow"))
    ctx = _ctx(tmp_path, client)

    result = await chat_with_module(ctx, {"module": "article-writer", "user": {"id": "pro"}, "body": {"message": "x"}})

    assert result.kind == ErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_chat_with_module_requires_message(tmp_path):
    ctx = _ctx(tmp_path)

    result = await chat_with_module(ctx, {"module": "article-writer", "user": {"id": "pro"}, "body": {"message": ""}})

    assert result.kind == ErrorKind.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_chat_session_entry_points(tmp_path):
    ctx = _ctx(tmp_path)
    user = {"id": "pro"}

    created = await create_or_get_chat_session(ctx, {"user": user, "body": {"module_slug": "article-writer"}})
    again = await create_or_get_chat_session(ctx, {"user": user, "body": {"module_slug": "article-writer"}})
    assert isinstance(created.data, SessionView)
    assert again.data.id == created.data.id

    session_id = created.data.id
    await update_chat_session(ctx, {"session_id": session_id, "session_data": {"step": 1, "tone": "dry"}})
    merged = await update_chat_session(ctx, {"session_id": session_id, "session_data": {"step": 2}})
    assert merged.data.session_data == {"step": 2, "tone": "dry"}

    fetched = await get_chat_session(ctx, {"session_id": session_id})
    assert fetched.data.session_data == {"step": 2, "tone": "dry"}

    missing = await get_chat_session(ctx, {"session_id": "nope"})
    assert missing.kind == ErrorKind.SESSION_NOT_FOUND

    cleaned = await cleanup_expired_sessions(ctx, {})
    assert cleaned.data.deleted == 0
