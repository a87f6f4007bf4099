"""Chat vs standard invocation mode."""

from __future__ import annotations

from urllib.parse import urlsplit

from workflow_dispatch.models import ModuleDescriptor, TriggerType, WorkflowRequest
from workflow_dispatch.workflow.modules import CHAT_MODULES


def resolve_trigger_type(module: ModuleDescriptor, request: WorkflowRequest) -> TriggerType:
    """Classify one invocation. Rules are checked in order; first match wins."""

    if request.is_chat_mode and request.session_id and request.message:
        return TriggerType.CHAT

    if module.trigger_type is TriggerType.CHAT:
        return TriggerType.CHAT

    if module.endpoint and _endpoint_path(module.endpoint).endswith("/chat"):
        return TriggerType.CHAT

    if module.slug in CHAT_MODULES:
        return TriggerType.CHAT

    return TriggerType.STANDARD


def _endpoint_path(endpoint: str) -> str:
    path = urlsplit(endpoint).path
    return path.rstrip("/") if path != "/" else path
