"""ProposalService: review of requests parked by the global validator.

Approving a proposal publishes the target's ``*.validated`` event, correlated
with the original request, so the family executor applies it like any other
validated command. Rejection only updates the proposal row.
"""

from typing import Any

import structlog

from datapod.commands.gateway import CommandGateway
from datapod.core.exceptions import ConflictError, NotFoundError
from datapod.db.models.proposal import Proposal
from datapod.events.envelope import Event, create_event, derived_event_id
from datapod.events.types import Phase, parse_event_name
from datapod.permissions.workspace import (
    MembershipReader,
    require_admin,
    require_resource_owner,
    require_viewer,
)
from datapod.repositories.proposal import ProposalRepository

logger = structlog.get_logger(__name__)


class ProposalService:
    def __init__(
        self,
        proposals: ProposalRepository,
        memberships: MembershipReader,
        gateway: CommandGateway,
    ):
        self.proposals = proposals
        self.memberships = memberships
        self.gateway = gateway

    async def _authorize_reviewer(self, proposal: Proposal, reviewer_id: str) -> None:
        if proposal.workspace_id:
            await require_admin(self.memberships, proposal.workspace_id, reviewer_id)
        else:
            require_resource_owner(proposal, reviewer_id)

    def _ensure_pending(self, proposal: Proposal) -> None:
        if proposal.status != "pending":
            raise ConflictError(
                f"Proposal is already {proposal.status}",
                {"proposal_id": proposal.id, "status": proposal.status},
            )

    async def _load_pending(self, proposal_id: str, reviewer_id: str) -> Proposal:
        proposal = await self.proposals.get(proposal_id)
        await self._authorize_reviewer(proposal, reviewer_id)
        self._ensure_pending(proposal)
        return proposal

    async def _mark(self, proposal_id: str, status: str, reviewer_id: str, reason: str | None = None) -> Proposal:
        try:
            return await self.proposals.mark_reviewed(proposal_id, status, reviewer_id, reason)
        except NotFoundError:
            # Another reviewer got there first
            raise ConflictError("Proposal is no longer pending", {"proposal_id": proposal_id}) from None

    async def approve(self, proposal_id: str, reviewer_id: str) -> Event:
        """Approve a pending proposal and publish its validated event.

        A proposal already marked validated whose event never reached the log
        is published again, so an approval interrupted by a log outage can be
        retried.

        Raises:
            NotFoundError: unknown proposal, or reviewer not in its workspace
            ForbiddenError: reviewer is below admin
            ConflictError: the proposal was rejected, or approved and published
        """
        proposal = await self.proposals.get(proposal_id)
        await self._authorize_reviewer(proposal, reviewer_id)

        if proposal.status == "validated":
            event = self._validated_event(proposal, proposal.reviewed_by or reviewer_id)
            if await self.gateway.event_log.find_by_id(event.id) is not None:
                raise ConflictError(
                    "Proposal is already validated",
                    {"proposal_id": proposal_id, "status": proposal.status},
                )
            logger.warning("proposal_approval_resumed", proposal_id=proposal_id, event_id=event.id)
        else:
            self._ensure_pending(proposal)
            event = self._validated_event(proposal, reviewer_id)
            await self._mark(proposal_id, "validated", reviewer_id)

        published = await self.gateway.publish(event)
        logger.info("proposal_approved", proposal_id=proposal_id, reviewer_id=reviewer_id, event_id=published.id)
        return published

    def _validated_event(self, proposal: Proposal, approved_by: str) -> Event:
        request: dict[str, Any] = proposal.request or {}
        validated_type = str(parse_event_name(request["type"]).with_phase(Phase.VALIDATED))

        metadata = dict(request.get("metadata") or {})
        metadata.pop("requiresConfirmation", None)
        metadata.update({"proposalId": proposal.id, "approvedBy": approved_by})
        if proposal.workspace_id:
            metadata["workspaceId"] = proposal.workspace_id

        return create_event(
            type=validated_type,
            subject_id=proposal.target_id,
            subject_type=proposal.target_type,
            data=request.get("data") or {},
            user_id=proposal.user_id,
            source=request.get("source", "api"),
            correlation_id=request.get("correlationId"),
            causation_id=request.get("eventId"),
            metadata=metadata,
            event_id=derived_event_id(proposal.id, validated_type),
        )

    async def reject(self, proposal_id: str, reviewer_id: str, reason: str | None = None) -> Proposal:
        await self._load_pending(proposal_id, reviewer_id)
        proposal = await self._mark(proposal_id, "rejected", reviewer_id, reason)
        logger.info("proposal_rejected", proposal_id=proposal_id, reviewer_id=reviewer_id)
        return proposal

    async def list_pending(self, workspace_id: str, user_id: str) -> list[Proposal]:
        """Pending proposals of a workspace, for any member."""
        await require_viewer(self.memberships, workspace_id, user_id)
        return await self.proposals.find_by_workspace(workspace_id, status="pending")
