import pytest

from workflow_dispatch.models import ModuleDescriptor, TriggerType, WorkflowRequest
from workflow_dispatch.workflow.trigger import resolve_trigger_type


def _module(slug="plain-module", endpoint="https://engine.local/webhook/plain", trigger_type=None):  # noqa: ANN001, ANN201
    return ModuleDescriptor(id="m-1", name="Module", slug=slug, endpoint=endpoint, trigger_type=trigger_type)


def test_standard_by_default():
    assert resolve_trigger_type(_module(), WorkflowRequest()) is TriggerType.STANDARD


def test_explicit_chat_request_wins_over_standard_hint():
    request = WorkflowRequest(message="hi", is_chat_mode=True, session_id="s-1")

    assert resolve_trigger_type(_module(trigger_type=TriggerType.STANDARD), request) is TriggerType.CHAT


@pytest.mark.parametrize(
    "request_",
    [
        WorkflowRequest(message="hi", is_chat_mode=True),
        WorkflowRequest(message="hi", session_id="s-1"),
        WorkflowRequest(is_chat_mode=True, session_id="s-1"),
    ],
)
def test_partial_chat_request_is_not_enough(request_):
    assert resolve_trigger_type(_module(), request_) is TriggerType.STANDARD


def test_module_chat_hint():
    assert resolve_trigger_type(_module(trigger_type=TriggerType.CHAT), WorkflowRequest()) is TriggerType.CHAT


@pytest.mark.parametrize(
    "endpoint",
    ["https://engine.local/webhook/chat", "https://engine.local/webhook/chat/", "https://e.local/chat?x=1"],
)
def test_chat_endpoint_suffix(endpoint):
    assert resolve_trigger_type(_module(endpoint=endpoint), WorkflowRequest()) is TriggerType.CHAT


def test_endpoint_containing_chat_elsewhere_is_standard():
    module = _module(endpoint="https://engine.local/chatbot/run")

    assert resolve_trigger_type(module, WorkflowRequest()) is TriggerType.STANDARD


def test_endpoint_rule_applies_before_standard_fallback():
    module = _module(slug="unlisted", endpoint="https://engine.local/hooks/chat", trigger_type=TriggerType.STANDARD)

    assert resolve_trigger_type(module, WorkflowRequest()) is TriggerType.CHAT


@pytest.mark.parametrize("slug", ["social-factory", "email-campaign", "article-writer"])
def test_conversational_modules(slug):
    assert resolve_trigger_type(_module(slug=slug), WorkflowRequest()) is TriggerType.CHAT
