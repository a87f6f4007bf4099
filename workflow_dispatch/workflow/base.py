"""Workflow engine interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from workflow_dispatch.models import ModuleDescriptor, WorkflowRequest
from workflow_dispatch.results import Result
from workflow_dispatch.workflow.outcome import WorkflowOutcome


class WorkflowEngine(ABC):
    """Abstract workflow invoker used by the dispatcher and entry points."""

    @abstractmethod
    async def execute_workflow(
        self,
        module: ModuleDescriptor,
        request: WorkflowRequest,
        user_id: str,
        user_email: str | None = None,
    ) -> Result[WorkflowOutcome]:
        """Invoke the module's workflow once and classify the outcome."""
