"""Translate results into HTTP-style status codes and bodies."""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter

from workflow_dispatch.results import ErrorKind, Result, kind_name

_STATUS_BY_KIND: dict[str, int] = {
    ErrorKind.VALIDATION_ERROR.value: 400,
    ErrorKind.PREMIUM_FEATURE.value: 403,
    ErrorKind.INVALID_TRANSITION.value: 409,
    ErrorKind.TIMEOUT.value: 504,
    ErrorKind.EXECUTION_ERROR.value: 502,
}

_JSON = TypeAdapter(Any)


def status_for(result: Result[Any]) -> int:
    if result.success:
        return 200
    kind = kind_name(result.kind)
    if kind.endswith("_NOT_FOUND"):
        return 404
    return _STATUS_BY_KIND.get(kind, 500)


def to_response(result: Result[Any]) -> tuple[int, dict[str, Any]]:
    """Return ``(status, body)`` ready to be serialized as JSON."""

    status = status_for(result)
    if result.success:
        return status, {"data": _JSON.dump_python(result.data, mode="json")}
    return status, {"error": kind_name(result.kind), "details": result.message}
