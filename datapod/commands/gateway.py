"""Command Emission Gateway.

The single entry point for every mutation request. One call appends exactly
one event and performs exactly one dispatch:

- standard path: the policy requires validation, so the ``*.requested`` event
  is logged and dispatched to the global validator
- fast path: the ``*.validated`` event is logged (``metadata.fastPath``) and
  dispatched straight to the family executor

The log append always precedes the dispatch. If the append fails nothing is
dispatched; if the dispatch keeps failing the event stays logged and
DispatchError is raised so the caller can ``redispatch`` it later.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from datapod.core.exceptions import (
    DispatchError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    is_retryable,
)
from datapod.dispatch.base import Dispatcher
from datapod.dispatch.schemas import DispatchMessage
from datapod.events.envelope import Event, EventSource, create_event
from datapod.events.log import EventLog
from datapod.events.types import Phase, family_for_subject_type, parse_event_name
from datapod.policy.validation_policy import PolicyParams, ValidationPolicyService

logger = structlog.get_logger(__name__)


@dataclass
class RequestInput:
    type: str
    subject_id: str
    subject_type: str
    user_id: str | None
    data: dict[str, Any] = field(default_factory=dict)
    workspace_id: str | None = None
    project_id: str | None = None
    user_role: str | None = None
    source: EventSource | str = EventSource.API
    correlation_id: str | None = None
    priority: str | None = None


class CommandGateway:
    def __init__(
        self,
        event_log: EventLog,
        dispatcher: Dispatcher,
        policy: ValidationPolicyService,
        dispatch_attempts: int = 3,
        dispatch_wait: wait_base | None = None,
    ):
        self.event_log = event_log
        self.dispatcher = dispatcher
        self.policy = policy
        self.dispatch_attempts = dispatch_attempts
        self.dispatch_wait = dispatch_wait or wait_exponential(multiplier=0.2, min=0.2, max=2)

    async def emit_request_event(self, request: RequestInput) -> Event:
        """Route a ``*.requested`` command through the standard or fast path.

        Returns the logged event (``*.requested`` or ``*.validated``).

        Raises:
            UnauthorizedError: no acting user
            ValidationError: malformed type, wrong phase, family/subject mismatch
                or a payload the type's schema rejects
            DispatchError: the event was logged but could not be dispatched
        """
        if not request.user_id:
            raise UnauthorizedError("An authenticated user is required to emit commands")

        name = parse_event_name(request.type)
        if name.phase != Phase.REQUESTED:
            raise ValidationError(
                f"Commands must be emitted in the requested phase, got '{request.type}'",
                {"type": request.type},
            )
        family = family_for_subject_type(request.subject_type)
        if family.name != name.family:
            raise ValidationError(
                f"Event family '{name.family}' does not match subject type '{request.subject_type}'",
                {"type": request.type, "subject_type": request.subject_type, "expected_family": family.name},
            )

        decision = await self.policy.requires_validation(
            PolicyParams(
                operation=name.action,
                subject_type=request.subject_type,
                workspace_id=request.workspace_id,
                project_id=request.project_id,
                user_role=request.user_role,
            )
        )

        metadata: dict[str, Any] = {
            "policyReason": decision.reason,
            "policySource": decision.source.value,
        }
        if request.workspace_id:
            metadata["workspaceId"] = request.workspace_id
        if request.project_id:
            metadata["projectId"] = request.project_id
        if request.priority:
            metadata["priority"] = request.priority

        if decision.requires_validation:
            event_type = str(name)
            metadata["requiresConfirmation"] = True
        else:
            event_type = str(name.with_phase(Phase.VALIDATED))
            metadata["fastPath"] = True

        event = create_event(
            type=event_type,
            subject_id=request.subject_id,
            subject_type=request.subject_type,
            data=request.data,
            user_id=request.user_id,
            source=request.source,
            correlation_id=request.correlation_id or str(uuid.uuid4()),
            metadata=metadata,
        )

        stored = await self.event_log.append(event)
        logger.info(
            "command_accepted",
            event_id=stored.id,
            event_type=stored.type,
            subject_id=stored.subject_id,
            fast_path=not decision.requires_validation,
            policy_source=decision.source.value,
        )

        await self._dispatch(stored)
        return stored

    async def publish(self, event: Event) -> Event:
        """Append an already-built event and dispatch it (no policy routing).

        Used for events whose authorization happened elsewhere, such as the
        validated event of an approved proposal.
        """
        stored = await self.event_log.append(event)
        await self._dispatch(stored)
        return stored

    async def redispatch(self, event_id: str) -> Event:
        """Re-send an already logged event, e.g. after a DispatchError.

        Raises:
            NotFoundError: no event with that id
            ValidationError: the event is a completed record (not a trigger)
        """
        event = await self.event_log.find_by_id(event_id)
        if event is None:
            raise NotFoundError("Event", event_id)
        name = parse_event_name(event.type)
        if name.phase == Phase.COMPLETED:
            raise ValidationError(f"Completed event '{event_id}' cannot be dispatched", {"event_id": event_id})
        await self._dispatch(event)
        return event

    async def _dispatch(self, event: Event) -> None:
        message = DispatchMessage.from_event(event)
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(is_retryable),
                stop=stop_after_attempt(self.dispatch_attempts),
                wait=self.dispatch_wait,
                before_sleep=lambda rs: logger.warning(
                    "dispatch_send_retrying",
                    event_id=event.id,
                    attempt=rs.attempt_number,
                    sleep_seconds=rs.next_action.sleep,
                ),
            ):
                with attempt:
                    await self.dispatcher.send(message)
        except RetryError as exc:
            raise self._dispatch_failed(event, exc.last_attempt.exception()) from exc

    def _dispatch_failed(self, event: Event, cause: BaseException | None) -> DispatchError:
        logger.error(
            "dispatch_failed",
            event_id=event.id,
            event_type=event.type,
            attempts=self.dispatch_attempts,
            error=str(cause),
            error_type=type(cause).__name__,
        )
        return DispatchError(event.id, self.dispatch_attempts, cause=str(cause))
