"""Core domain models used across layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Scheduled task lifecycle states."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    def can_transition(self, target: TaskStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.SCHEDULED: frozenset({TaskStatus.RUNNING}),
    TaskStatus.RUNNING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


class TriggerType(str, Enum):
    """How a module is invoked: multi-turn chat or single shot."""

    CHAT = "CHAT"
    STANDARD = "STANDARD"


@dataclass(slots=True)
class ScheduledTask:
    """Represents a persisted scheduled task."""

    id: str
    user_id: str
    module_id: str
    execution_time: datetime
    payload: dict[str, Any]
    status: TaskStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        return self.status is TaskStatus.SCHEDULED and self.execution_time <= now


@dataclass(slots=True)
class ChatSession:
    """Conversation state for one (user, module) pair."""

    id: str
    user_id: str
    module_slug: str
    session_data: dict[str, Any]
    created_at: datetime
    expires_at: datetime
    updated_at: datetime | None = None
    last_activity: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass(slots=True)
class ModuleDescriptor:
    """Catalog entry for a workflow module."""

    id: str
    name: str
    slug: str
    endpoint: str
    trigger_type: TriggerType | None = None
    is_active: bool = True


@dataclass(slots=True)
class UserProfile:
    """Identity lookup result for the calling user."""

    id: str
    email: str | None = None
    full_name: str | None = None
    role: str | None = None
    plan_name: str | None = None
    credit_balance: float = 0
    created_at: datetime | None = None


@dataclass(slots=True)
class WorkflowRequest:
    """Input handed to one workflow invocation."""

    message: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    is_chat_mode: bool = False
    session_id: str | None = None
    timestamp: str | None = None
