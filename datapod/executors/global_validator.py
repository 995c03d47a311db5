"""Global validator: the standard-path router for every ``*.*.requested`` event.

For each request it decides one of:
1. deny: the actor lacks the workspace role. A ``requests.deny.completed``
   event records the reason and processing stops (denials are not retried).
2. propose: an automated change in a workspace that does not auto-approve
   automation. The request is parked as a pending proposal.
3. approve: ``*.validated`` is logged (same correlation id, caused by the
   request) and dispatched to the family executor.
"""

from typing import Any

import structlog

from datapod.core.exceptions import ForbiddenError, NotFoundError
from datapod.dispatch.registry import ExecutionContext, Handler
from datapod.dispatch.schemas import DispatchMessage
from datapod.events.envelope import EventSource, create_event, derived_event_id
from datapod.events.types import FAMILIES, Phase, SystemEventTypes
from datapod.executors.base import ExecutorDeps, authorize

logger = structlog.get_logger(__name__)

GLOBAL_VALIDATOR_ID = "global-validator"


def global_validator(deps: ExecutorDeps) -> Handler:
    async def validate_request(ctx: ExecutionContext) -> dict[str, Any]:
        msg, name = ctx.event, ctx.name
        if name.family not in FAMILIES:
            # System requests (webhook delivery) have their own consumers
            logger.debug("validator_skipped_system_event", event_name=msg.name)
            return {"status": "skipped"}

        async def check_permissions() -> dict[str, Any]:
            try:
                role = await authorize(deps.memberships, msg, name.action)
            except (NotFoundError, ForbiddenError) as exc:
                return {"granted": False, "reason": exc.message}
            return {"granted": True, "role": role}

        permission = await ctx.step.run("check-permissions", check_permissions)

        if not permission["granted"]:

            async def record_denial() -> str:
                event = create_event(
                    type=SystemEventTypes.REQUEST_DENIED,
                    subject_id=msg.subject_id,
                    subject_type=msg.subject_type,
                    data={"requestedType": msg.name, "reason": permission["reason"], "requestId": msg.id},
                    user_id=msg.user_id,
                    source=msg.source,
                    correlation_id=msg.correlation_id,
                    causation_id=msg.id,
                    metadata={"workspaceId": msg.workspace_id} if msg.workspace_id else None,
                    event_id=derived_event_id(msg.id, SystemEventTypes.REQUEST_DENIED),
                )
                await deps.event_log.append(event)
                return event.id

            await ctx.step.run("record-denial", record_denial)
            logger.warning(
                "request_denied",
                event_name=msg.name,
                user_id=msg.user_id,
                workspace_id=msg.workspace_id,
                reason=permission["reason"],
            )
            return {"status": "denied", "reason": permission["reason"]}

        async def check_policy() -> dict[str, Any]:
            if msg.source != EventSource.AUTOMATION.value:
                return {"approved": True, "reason": "User authorized"}
            settings = await deps.workspaces.get_workspace_settings(msg.workspace_id) if msg.workspace_id else None
            if (settings or {}).get("autoApproveAutomation"):
                return {"approved": True, "reason": "Workspace auto-approves automation"}
            return {"approved": False, "reason": "Automated changes require review"}

        policy = await ctx.step.run("check-policy", check_policy)

        if not policy["approved"]:

            async def create_proposal() -> str:
                proposal = await deps.proposals.create(
                    target_type=msg.subject_type,
                    target_id=msg.subject_id,
                    request={
                        "eventId": msg.id,
                        "type": msg.name,
                        "data": msg.data,
                        "source": msg.source,
                        "correlationId": msg.correlation_id,
                        "metadata": msg.metadata,
                        "reason": policy["reason"],
                    },
                    user_id=msg.user_id,
                    workspace_id=msg.workspace_id,
                )
                return proposal.id

            proposal_id = await ctx.step.run("create-proposal", create_proposal)
            logger.info("request_proposed", event_name=msg.name, proposal_id=proposal_id)
            return {"status": "proposed", "proposalId": proposal_id}

        validated_type = str(name.with_phase(Phase.VALIDATED))

        async def log_validated() -> str:
            metadata = {k: v for k, v in msg.metadata.items() if k != "requiresConfirmation"}
            metadata.update({"validatedBy": GLOBAL_VALIDATOR_ID, "requestId": msg.id})
            event = create_event(
                type=validated_type,
                subject_id=msg.subject_id,
                subject_type=msg.subject_type,
                data=msg.data,
                user_id=msg.user_id,
                source=msg.source,
                correlation_id=msg.correlation_id,
                causation_id=msg.id,
                metadata=metadata,
                event_id=derived_event_id(msg.id, validated_type),
            )
            stored = await deps.event_log.append(event)
            return stored.id

        validated_id = await ctx.step.run("log-validated", log_validated)

        async def dispatch_validated() -> bool:
            event = await deps.event_log.find_by_id(validated_id)
            await deps.dispatcher.send(DispatchMessage.from_event(event))
            return True

        await ctx.step.run("dispatch-validated", dispatch_validated)
        logger.info("request_validated", event_name=msg.name, validated_event_id=validated_id)
        return {"status": "validated", "eventId": validated_id}

    return validate_request
