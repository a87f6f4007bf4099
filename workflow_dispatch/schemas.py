"""Input and output contracts for the public entry points."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from workflow_dispatch.models import TaskStatus


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UserRef(BaseModel):
    """Authenticated caller."""

    id: str = Field(min_length=1)
    email: str | None = None


class ScheduleTaskBody(BaseModel):
    input_data: dict[str, Any]
    execution_time: datetime

    @field_validator("execution_time")
    @classmethod
    def _must_be_future(cls, value: datetime) -> datetime:
        value = _as_utc(value)
        if value <= datetime.now(timezone.utc):
            raise ValueError("Execution time must be in the future")
        return value


class ScheduleTaskInput(BaseModel):
    user_id: str = Field(min_length=1)
    module_slug: str = Field(min_length=1)
    body: ScheduleTaskBody


class UpdateTaskBody(BaseModel):
    execution_time: datetime

    @field_validator("execution_time")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return _as_utc(value)


class UpdateScheduledTaskInput(BaseModel):
    user_id: str = Field(min_length=1)
    task_id: str = Field(min_length=1)
    body: UpdateTaskBody


class DeleteScheduledTaskInput(BaseModel):
    user_id: str = Field(min_length=1)
    task_id: str = Field(min_length=1)


class GetUserTasksInput(BaseModel):
    user_id: str = Field(min_length=1)


class RunScheduledTasksInput(BaseModel):
    limit: int = Field(default=10, ge=1, le=10)


class ExecuteModuleBody(BaseModel):
    input: dict[str, Any] = Field(default_factory=dict)


class ExecuteModuleInput(BaseModel):
    module: str = Field(min_length=1, description="Module id or slug.")
    user: UserRef
    body: ExecuteModuleBody = Field(default_factory=ExecuteModuleBody)


class ChatBody(BaseModel):
    message: str = Field(min_length=1)
    session_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class ChatWithModuleInput(BaseModel):
    module: str = Field(min_length=1, description="Module id or slug.")
    user: UserRef
    body: ChatBody


class CreateOrGetChatSessionBody(BaseModel):
    module_slug: str = Field(min_length=1)


class CreateOrGetChatSessionInput(BaseModel):
    user: UserRef
    body: CreateOrGetChatSessionBody


class GetChatSessionInput(BaseModel):
    session_id: str = Field(min_length=1)


class UpdateChatSessionInput(BaseModel):
    session_id: str = Field(min_length=1)
    session_data: dict[str, Any]


class CleanupExpiredSessionsInput(BaseModel):
    pass


class TaskView(BaseModel):
    """Scheduled task as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

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


class SessionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    module_slug: str
    session_data: dict[str, Any]
    created_at: datetime
    updated_at: datetime | None = None
    expires_at: datetime
    last_activity: datetime | None = None


class DispatchReportView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    selected: int = Field(ge=0)
    skipped: int = Field(ge=0)
    completed: int = Field(ge=0)
    failed: int = Field(ge=0)


class ChatReply(BaseModel):
    """One conversational turn as seen by the caller."""

    message: str | None = None
    next_step: str | None = None
    options: list[Any] = Field(default_factory=list)
    type: str = "text"
    context: dict[str, Any] = Field(default_factory=dict)
    is_complete: bool = False
    data: Any = None
    output_message: str | None = None
    session_id: str | None = None


class MessageReply(BaseModel):
    message: str


class CleanupReport(BaseModel):
    # None when the store cannot report a count.
    deleted: int | None = None
