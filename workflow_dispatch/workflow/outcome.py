"""Typed workflow responses and their human-readable summaries.

The engine answers with JSON tagged by ``module_type``. Known tags are parsed
into their own model; anything else is kept as an unrecognized outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

LOGGER = logging.getLogger(__name__)

GENERATED_CONTENT_MESSAGE = "Your content has been generated and saved to your history."
FALLBACK_MESSAGE = "Workflow executed successfully."


class _Variant(BaseModel):
    model_config = ConfigDict(extra="allow")

    def output_message(self) -> str | None:
        raise NotImplementedError


class AiWriterDraft(BaseModel):
    model_config = ConfigDict(extra="allow")

    state: Literal["missing", "ready_for_confirmation", "confirmed"]
    missing_field: str | None = None
    question: str | None = None
    result_partial: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    errors: list[str] | None = None


class AiWriterOutcome(_Variant):
    """Conversational brief collection for the writing assistant."""

    module_type: Literal["ai-writer"]
    output: AiWriterDraft

    def output_message(self) -> str | None:
        if self.output.state == "confirmed":
            return None
        return self.output.question


class GeneratedContentOutcome(_Variant):
    """One-shot generators that store their artifact server side."""

    module_type: Literal["document-generator", "real-estate-lease-generator"]

    def output_message(self) -> str | None:
        return GENERATED_CONTENT_MESSAGE


class UnrecognizedOutcome(_Variant):
    module_type: Any = "unknown"

    def output_message(self) -> str | None:
        return extract_message(self.model_dump()) or FALLBACK_MESSAGE


_VARIANTS: dict[str, type[_Variant]] = {
    "ai-writer": AiWriterOutcome,
    "document-generator": GeneratedContentOutcome,
    "real-estate-lease-generator": GeneratedContentOutcome,
}


@dataclass(slots=True)
class WorkflowOutcome:
    """Parsed engine response plus its derived summary."""

    variant: _Variant
    raw: dict[str, Any]
    output_message: str | None
    session_id: str | None = None

    @property
    def module_type(self) -> str:
        return str(getattr(self.variant, "module_type", "unknown"))

    @property
    def data(self) -> dict[str, Any]:
        return {**self.raw, "output_message": self.output_message}


def parse_outcome(payload: Any) -> WorkflowOutcome:
    """Build a ``WorkflowOutcome`` from decoded response JSON.

    A tagged payload that does not fit its variant is kept as an
    unrecognized outcome. Raises ``ValueError`` when the payload is not an
    object, a list of objects, a string or null.
    """
    raw = _normalize(payload)
    module_type = raw.get("module_type")
    variant_cls = _VARIANTS.get(module_type) if isinstance(module_type, str) else None
    variant: _Variant | None = None
    if variant_cls is not None:
        try:
            variant = variant_cls.model_validate(raw)
        except ValidationError as exc:
            LOGGER.warning("Unexpected %s response shape (%d errors), keeping it untyped", module_type, exc.error_count())
    if variant is None:
        variant = UnrecognizedOutcome.model_validate(raw)
    return WorkflowOutcome(variant=variant, raw=raw, output_message=variant.output_message())


def _normalize(payload: Any) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, list):
        # Engines commonly answer with a one-item list of results.
        if not payload:
            return {}
        if isinstance(payload[0], dict):
            return payload[0]
    if isinstance(payload, str):
        return {"output": payload}
    raise ValueError(f"Unexpected workflow response of type {type(payload).__name__}")


def extract_message(result: dict[str, Any]) -> str:
    """Best-effort text summary from loosely shaped engine output."""

    for key in ("output", "response", "message"):
        value = result.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    data = result.get("data")
    if isinstance(data, dict):
        for key in ("output", "message", "response"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return ""
