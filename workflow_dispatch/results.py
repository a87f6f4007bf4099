"""Success/typed-error return values used across the dispatch core."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar, Generic, TypeVar, Union

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Stable tags identifying a failure category."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    SCHEMA_ERROR = "SCHEMA_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    MODULE_NOT_FOUND = "MODULE_NOT_FOUND"
    MODULE_INVALID = "MODULE_INVALID"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    PREMIUM_FEATURE = "PREMIUM_FEATURE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying its payload."""

    data: T
    success: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class Err:
    """Failed outcome: a stable ``kind`` plus the underlying error."""

    kind: str
    error: BaseException
    success: ClassVar[bool] = False

    @property
    def message(self) -> str:
        return str(self.error)


Result = Union[Ok[T], Err]


def fail(kind: str, message: str) -> Err:
    """Build an ``Err`` from a kind and a plain message."""

    return Err(kind=kind, error=RuntimeError(message))


def kind_name(kind: str) -> str:
    """Plain string form of a kind, whether given as ``ErrorKind`` or ``str``."""

    return kind.value if isinstance(kind, ErrorKind) else kind


def try_catch(action: Callable[[], Any], kind: str = ErrorKind.UNKNOWN_ERROR) -> Result[Any]:
    """Run ``action`` and convert a raised exception into ``Err``.

    If ``action`` already returns a result it is passed through untouched,
    otherwise its return value is wrapped in ``Ok``.
    """
    try:
        value = action()
    except Exception as exc:  # noqa: BLE001
        LOGGER.debug("Converted %s to %s", type(exc).__name__, kind_name(kind))
        return Err(kind=kind, error=exc)
    if isinstance(value, (Ok, Err)):
        return value
    return Ok(value)


async def try_catch_async(
    action: Callable[[], Awaitable[Any]],
    kind: str = ErrorKind.UNKNOWN_ERROR,
) -> Result[Any]:
    """Async variant of :func:`try_catch`."""

    try:
        value = await action()
    except Exception as exc:  # noqa: BLE001
        LOGGER.debug("Converted %s to %s", type(exc).__name__, kind_name(kind))
        return Err(kind=kind, error=exc)
    if isinstance(value, (Ok, Err)):
        return value
    return Ok(value)


def unwrap(result: Result[T]) -> T:
    """Return the payload of ``result`` or raise the error it carries."""

    if result.success:
        return result.data
    raise result.error
