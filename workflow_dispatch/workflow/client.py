"""Webhook implementation of WorkflowEngine."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

import httpx

from workflow_dispatch.identity import IdentityLookup
from workflow_dispatch.models import (
    ChatSession,
    ModuleDescriptor,
    TriggerType,
    UserProfile,
    WorkflowRequest,
)
from workflow_dispatch.results import Err, ErrorKind, Ok, Result, fail
from workflow_dispatch.sessions import ChatSessionManager
from workflow_dispatch.workflow.base import WorkflowEngine
from workflow_dispatch.workflow.modules import (
    DEFAULT_TIMEOUT_SECONDS,
    MODULE_TIMEOUTS_SECONDS,
    timeout_for,
)
from workflow_dispatch.workflow.outcome import WorkflowOutcome, parse_outcome
from workflow_dispatch.workflow.trigger import resolve_trigger_type

_LOGGER = logging.getLogger(__name__)

PREMIUM_PLANS = frozenset({"solo", "standard", "premium"})
TIMEOUT_MESSAGE = (
    "The workflow is taking longer than expected and may still be completing. "
    "Check your generated content again in a few minutes."
)
_MAX_ERROR_BODY_CHARS = 2000
_MAX_SESSION_TURNS = 50


@dataclass(slots=True, frozen=True)
class WebhookCredentials:
    """Basic-auth credentials shared by every module webhook."""

    username: str
    password: str

    def header(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode("ascii")
        return f"Basic {token}"


class WebhookWorkflowClient(WorkflowEngine):
    """Invokes a module's workflow through its webhook endpoint."""

    def __init__(
        self,
        identity: IdentityLookup,
        credentials: WebhookCredentials,
        sessions: ChatSessionManager | None = None,
        timeouts: Mapping[str, float] = MODULE_TIMEOUTS_SECONDS,
        default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        header_prefix: str = "X-Dispatch",
        user_agent: str = "workflow-dispatch/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._identity = identity
        self._credentials = credentials
        self._sessions = sessions
        self._timeouts = timeouts
        self._default_timeout_seconds = default_timeout_seconds
        self._header_prefix = header_prefix
        self._user_agent = user_agent
        self._transport = transport

    async def execute_workflow(
        self,
        module: ModuleDescriptor,
        request: WorkflowRequest,
        user_id: str,
        user_email: str | None = None,
    ) -> Result[WorkflowOutcome]:
        if not module.endpoint:
            _LOGGER.error("Module %s has no webhook endpoint configured", module.slug)
            return fail(ErrorKind.CONFIGURATION_ERROR, f"Missing webhook endpoint for module {module.name}")

        profile_result = await self._identity.get_profile(user_id)
        if not profile_result.success:
            _LOGGER.error("Could not load profile for user %s: %s", user_id, profile_result.message)
            return Err(kind=ErrorKind.PROFILE_NOT_FOUND, error=profile_result.error)
        profile = profile_result.data
        email = user_email or profile.email or ""

        trigger_type = resolve_trigger_type(module, request)
        _LOGGER.info(
            "Trigger type %s for module=%s (explicit_chat=%s hint=%s)",
            trigger_type.value,
            module.slug,
            bool(request.is_chat_mode and request.session_id),
            module.trigger_type.value if module.trigger_type else None,
        )

        session: ChatSession | None = None
        if trigger_type is TriggerType.CHAT and self._sessions is not None:
            session_result = self._sessions.open_session(user_id, module.slug)
            if not session_result.success:
                return session_result
            session = session_result.data

        plan = _plan_tier(profile)
        payload = self._build_payload(module, request, user_id, email, profile, plan, trigger_type, session)
        headers = self._build_headers(module, user_id, plan)
        timeout_seconds = timeout_for(module.slug, self._timeouts, self._default_timeout_seconds)

        _LOGGER.info(
            "Executing workflow module=%s user=%s plan=%s trigger=%s timeout=%.0fs auth_user=%s password_length=%d",
            module.slug,
            user_id,
            plan,
            trigger_type.value,
            timeout_seconds,
            self._credentials.username,
            len(self._credentials.password),
        )

        result = await self._post(module, payload, headers, timeout_seconds)
        if result.success and session is not None:
            result.data.session_id = session.id
            self._record_turn(session, request, result.data)
        return result

    async def _post(
        self,
        module: ModuleDescriptor,
        payload: dict[str, Any],
        headers: dict[str, str],
        timeout_seconds: float,
    ) -> Result[WorkflowOutcome]:
        started = time.monotonic()
        try:
            # The wait_for budget is the only deadline; httpx's own timeouts stay off.
            async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
                response = await asyncio.wait_for(
                    client.post(module.endpoint, headers=headers, json=payload),
                    timeout=timeout_seconds,
                )
                if not response.is_success:
                    body = await _read_text(response)
                    _LOGGER.error(
                        "Workflow %s answered %s: %s",
                        module.slug,
                        response.status_code,
                        body[:200],
                    )
                    return fail(
                        ErrorKind.EXECUTION_ERROR,
                        f"Module {module.name} error: {response.status_code} - {body}",
                    )
                outcome = parse_outcome(response.json())
        except (asyncio.TimeoutError, httpx.TimeoutException):
            _LOGGER.warning(
                "Timeout after %.0fs for module %s; the workflow may still be running remotely",
                timeout_seconds,
                module.slug,
            )
            return fail(ErrorKind.TIMEOUT, TIMEOUT_MESSAGE)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Workflow execution failed for module %s: %s", module.slug, exc)
            return fail(ErrorKind.EXECUTION_ERROR, f"Execution of module {module.name} failed: {exc}")

        _LOGGER.info(
            "Workflow %s succeeded in %.2fs (module_type=%s)",
            module.slug,
            time.monotonic() - started,
            outcome.module_type,
        )
        return Ok(outcome)

    def _build_payload(
        self,
        module: ModuleDescriptor,
        request: WorkflowRequest,
        user_id: str,
        email: str,
        profile: UserProfile,
        plan: str,
        trigger_type: TriggerType,
        session: ChatSession | None,
    ) -> dict[str, Any]:
        now = _utc_now_iso()
        module_ref = {"id": module.id, "name": module.name, "slug": module.slug}
        payload: dict[str, Any] = {
            "input": {
                "message": request.message,
                "context": dict(request.context),
                "module_slug": module.slug,
                "module_name": module.name,
                "module_id": module.id,
                "timestamp": request.timestamp or now,
            },
            "metadata": {
                "correlation_id": uuid.uuid4().hex,
                "client_id": email,
                "trigger_type": trigger_type.value,
                "module": module_ref,
            },
            "auth": {
                "user_id": user_id,
                "email": email,
                "plan": plan,
                "credit_balance": profile.credit_balance or 0,
                "status": "active",
                "full_name": profile.full_name,
                "role": profile.role or "client",
                "is_premium": plan in PREMIUM_PLANS,
                "account_created": profile.created_at.isoformat() if profile.created_at else None,
                "session_timestamp": now,
                "module_info": {**module_ref, "trigger_type": trigger_type.value},
            },
        }
        if trigger_type is TriggerType.CHAT:
            payload["sessionId"] = session.id if session is not None else request.session_id or user_id
        return payload

    def _build_headers(self, module: ModuleDescriptor, user_id: str, plan: str) -> dict[str, str]:
        prefix = self._header_prefix
        return {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            f"{prefix}-User-ID": user_id,
            f"{prefix}-User-Plan": plan,
            f"{prefix}-Module": module.slug,
            "Authorization": self._credentials.header(),
        }

    def _record_turn(self, session: ChatSession, request: WorkflowRequest, outcome: WorkflowOutcome) -> None:
        # The remote call already happened, so a failed write is only logged.
        turn = {
            "message": request.message,
            "output_message": outcome.output_message,
            "module_type": outcome.module_type,
            "at": _utc_now_iso(),
        }
        try:
            update = self._sessions.append_turn(
                session.id,
                turn,
                context=dict(request.context),
                last_output=outcome.raw,
                max_turns=_MAX_SESSION_TURNS,
            )
        except Exception:  # noqa: BLE001
            _LOGGER.exception("Recording chat turn failed for session %s", session.id)
            return
        if not update.success:
            _LOGGER.error("Could not persist chat session %s: %s", session.id, update.message)


def _plan_tier(profile: UserProfile) -> str:
    return (profile.plan_name or "free").lower()


async def _read_text(response: httpx.Response) -> str:
    try:
        await response.aread()
        return response.text[:_MAX_ERROR_BODY_CHARS]
    except Exception:  # noqa: BLE001
        return "unknown error"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
