from datetime import datetime, timezone

import pytest

from workflow_dispatch.results import ErrorKind, Ok, fail
from workflow_dispatch.responses import status_for, to_response
from workflow_dispatch.schemas import DispatchReportView, MessageReply


@pytest.mark.parametrize(
    ("kind", "status"),
    [
        (ErrorKind.TASK_NOT_FOUND, 404),
        (ErrorKind.SESSION_NOT_FOUND, 404),
        (ErrorKind.MODULE_NOT_FOUND, 404),
        (ErrorKind.PROFILE_NOT_FOUND, 404),
        (ErrorKind.VALIDATION_ERROR, 400),
        (ErrorKind.PREMIUM_FEATURE, 403),
        (ErrorKind.INVALID_TRANSITION, 409),
        (ErrorKind.TIMEOUT, 504),
        (ErrorKind.EXECUTION_ERROR, 502),
        (ErrorKind.SCHEMA_ERROR, 500),
        (ErrorKind.UNKNOWN_ERROR, 500),
        ("SOMETHING_NEW", 500),
    ],
)
def test_status_for_error_kinds(kind, status):
    assert status_for(fail(kind, "x")) == status


def test_success_body_is_json_ready():
    status, body = to_response(
        Ok([MessageReply(message="hi"), {"at": datetime(2026, 1, 1, tzinfo=timezone.utc)}])
    )

    assert status == 200
    assert body == {"data": [{"message": "hi"}, {"at": "2026-01-01T00:00:00Z"}]}


def test_model_payload_is_dumped():
    status, body = to_response(Ok(DispatchReportView(selected=2, skipped=0, completed=1, failed=1)))

    assert status == 200
    assert body["data"] == {"selected": 2, "skipped": 0, "completed": 1, "failed": 1}


def test_error_body_carries_kind_and_details():
    status, body = to_response(fail(ErrorKind.TIMEOUT, "still running"))

    assert status == 504
    assert body == {"error": "TIMEOUT", "details": "still running"}
