from datetime import datetime, timedelta, timezone

from workflow_dispatch.db import Database
from workflow_dispatch.models import TaskStatus
from workflow_dispatch.results import ErrorKind
from workflow_dispatch.tasks import ScheduledTaskStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _store(tmp_path) -> ScheduledTaskStore:  # noqa: ANN001
    db = Database(tmp_path / "dispatch.db")
    db.initialize()
    return ScheduledTaskStore(db, clock=lambda: NOW)


def _create(store: ScheduledTaskStore, offset: timedelta, payload=None, user_id="user-1"):  # noqa: ANN001, ANN201
    result = store.create(user_id, "module-1", NOW + offset, payload or {"topic": "x"})
    assert result.success
    return result.data


def test_list_due_excludes_future_and_non_scheduled(tmp_path):
    store = _store(tmp_path)
    past = _create(store, timedelta(minutes=-5))
    _create(store, timedelta(minutes=5))
    claimed = _create(store, timedelta(minutes=-10))
    store.mark_running(claimed.id)

    due = store.list_due()

    assert due.success
    assert [task.id for task in due.data] == [past.id]


def test_list_due_orders_oldest_first_and_respects_limit(tmp_path):
    store = _store(tmp_path)
    late = _create(store, timedelta(minutes=-1))
    early = _create(store, timedelta(hours=-2))
    middle = _create(store, timedelta(minutes=-30))

    due = store.list_due(limit=2)

    assert [task.id for task in due.data] == [early.id, middle.id]
    assert late.id not in [task.id for task in due.data]


def test_task_due_exactly_now_is_selected(tmp_path):
    store = _store(tmp_path)
    task = _create(store, timedelta(0))

    assert [t.id for t in store.list_due().data] == [task.id]


def test_payload_round_trips_exactly(tmp_path):
    store = _store(tmp_path)
    payload = {"message": "write", "nested": {"tags": ["a", "b"], "n": 3, "ok": True, "none": None}}
    task = _create(store, timedelta(hours=1), payload=payload)

    fetched = store.get_by_id(task.id)

    assert fetched.success
    assert fetched.data.payload == payload
    assert fetched.data.status is TaskStatus.SCHEDULED
    assert fetched.data.execution_time == NOW + timedelta(hours=1)


def test_transitions_follow_lifecycle(tmp_path):
    store = _store(tmp_path)
    task = _create(store, timedelta(minutes=-1))

    running = store.mark_running(task.id)
    assert running.data.status is TaskStatus.RUNNING
    assert running.data.started_at == NOW

    completed = store.mark_completed(task.id, {"output": "done"})
    assert completed.data.status is TaskStatus.COMPLETED
    assert completed.data.completed_at == NOW
    assert completed.data.result == {"output": "done"}


def test_second_claim_loses(tmp_path):
    store = _store(tmp_path)
    task = _create(store, timedelta(minutes=-1))

    assert store.mark_running(task.id).success
    again = store.mark_running(task.id)

    assert not again.success
    assert again.kind == ErrorKind.TASK_NOT_FOUND


def test_completion_requires_running(tmp_path):
    store = _store(tmp_path)
    task = _create(store, timedelta(minutes=-1))

    result = store.mark_failed(task.id, {"kind": "TIMEOUT", "message": "slow"})

    assert result.kind == ErrorKind.TASK_NOT_FOUND
    assert store.get_by_id(task.id).data.status is TaskStatus.SCHEDULED


def test_terminal_states_are_final(tmp_path):
    store = _store(tmp_path)
    task = _create(store, timedelta(minutes=-1))
    store.mark_running(task.id)
    store.mark_failed(task.id, {"kind": "EXECUTION_ERROR", "message": "boom"})

    assert not store.mark_completed(task.id, {}).success
    assert not store.mark_running(task.id).success
    assert store.get_by_id(task.id).data.status is TaskStatus.FAILED


def test_mark_unknown_task_is_not_found(tmp_path):
    store = _store(tmp_path)

    assert store.mark_running("missing").kind == ErrorKind.TASK_NOT_FOUND


def test_get_by_id_scopes_to_owner(tmp_path):
    store = _store(tmp_path)
    task = _create(store, timedelta(hours=1))

    assert store.get_by_id(task.id, "user-1").success
    assert store.get_by_id(task.id, "someone-else").kind == ErrorKind.TASK_NOT_FOUND


def test_update_changes_execution_time_of_scheduled_task(tmp_path):
    store = _store(tmp_path)
    task = _create(store, timedelta(hours=1))

    updated = store.update(task.id, user_id="user-1", execution_time=NOW + timedelta(hours=3))

    assert updated.success
    assert updated.data.execution_time == NOW + timedelta(hours=3)
    assert updated.data.status is TaskStatus.SCHEDULED


def test_update_rejects_dispatched_task(tmp_path):
    store = _store(tmp_path)
    task = _create(store, timedelta(minutes=-1))
    store.mark_running(task.id)

    updated = store.update(task.id, execution_time=NOW + timedelta(hours=1))

    assert updated.kind == ErrorKind.INVALID_TRANSITION


def test_delete_and_list_by_user(tmp_path):
    store = _store(tmp_path)
    keep = _create(store, timedelta(hours=1))
    gone = _create(store, timedelta(hours=2))
    _create(store, timedelta(hours=1), user_id="user-2")
    running = _create(store, timedelta(minutes=-1))
    store.mark_running(running.id)

    assert store.delete(gone.id, "user-1").success
    assert store.delete(gone.id, "user-1").kind == ErrorKind.TASK_NOT_FOUND

    listed = store.list_by_user("user-1", [TaskStatus.SCHEDULED])
    assert [task.id for task in listed.data] == [keep.id]
    everything = store.list_by_user("user-1")
    assert {task.id for task in everything.data} == {keep.id, running.id}


def test_unencodable_result_is_returned_as_error(tmp_path):
    store = _store(tmp_path)
    task = _create(store, timedelta(minutes=-1))
    store.mark_running(task.id)

    result = store.mark_completed(task.id, {"at": datetime.now(timezone.utc)})

    assert not result.success
    assert result.kind == ErrorKind.UNKNOWN_ERROR
    assert store.get_by_id(task.id).data.status is TaskStatus.RUNNING
