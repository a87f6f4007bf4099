"""Contract-checked entry points.

Every public operation is built here: the raw input is validated against a
declared input contract, the handler runs and returns a result, and a
successful payload is validated against a declared output contract before it
reaches the caller. Contracts are anything pydantic can validate.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from workflow_dispatch.results import Err, ErrorKind, Ok, Result, fail

LOGGER = logging.getLogger(__name__)

CtxT = TypeVar("CtxT")

Handler = Callable[[CtxT, Any], Awaitable[Result[Any]]]
UseCase = Callable[[CtxT, Any], Awaitable[Result[Any]]]


class UseCaseBuilder(Generic[CtxT]):
    """Fluent builder: ``input(...)``, ``output(...)``, then ``handle(fn)``."""

    def __init__(self, name: str | None = None) -> None:
        self._name = name
        self._input: TypeAdapter[Any] | None = None
        self._output: TypeAdapter[Any] | None = None
        self._handler: Handler[CtxT] | None = None

    def input(self, contract: Any) -> UseCaseBuilder[CtxT]:
        self._input = TypeAdapter(contract)
        return self

    def output(self, contract: Any) -> UseCaseBuilder[CtxT]:
        self._output = TypeAdapter(contract)
        return self

    def handle(self, handler: Handler[CtxT] | None) -> UseCase[CtxT]:
        self._handler = handler
        name = self._name or getattr(handler, "__name__", "use_case")

        async def run(ctx: CtxT, raw_input: Any) -> Result[Any]:
            if self._input is None:
                return fail(ErrorKind.SCHEMA_ERROR, f"{name}: input contract not defined")
            if self._output is None:
                return fail(ErrorKind.SCHEMA_ERROR, f"{name}: output contract not defined")
            if self._handler is None:
                return fail(ErrorKind.SCHEMA_ERROR, f"{name}: handler not defined")

            try:
                value = self._input.validate_python(raw_input)
            except ValidationError as exc:
                LOGGER.info("%s rejected input: %s", name, exc.error_count())
                return Err(kind=ErrorKind.VALIDATION_ERROR, error=exc)

            try:
                result = await self._handler(ctx, value)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("%s raised inside its handler", name)
                return Err(kind=ErrorKind.INTERNAL_ERROR, error=exc)

            if not result.success:
                return result

            try:
                data = self._output.validate_python(result.data, from_attributes=True)
            except ValidationError as exc:
                LOGGER.error("%s produced output violating its contract: %s", name, exc)
                return Err(kind=ErrorKind.SCHEMA_ERROR, error=exc)
            return Ok(data)

        run.__name__ = name
        return run


def build_use_case(name: str | None = None) -> UseCaseBuilder[Any]:
    """Start building a contract-checked operation."""

    return UseCaseBuilder(name)
