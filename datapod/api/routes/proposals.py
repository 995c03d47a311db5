"""Proposal review routes."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from datapod.api.deps import get_container
from datapod.api.routes.commands import event_response
from datapod.core.auth import SessionIdentity, require_auth
from datapod.db.models.proposal import Proposal
from datapod.services.container import ServiceContainer

router = APIRouter()


class ProposalResponse(BaseModel):
    id: str
    workspace_id: str | None
    user_id: str
    target_type: str
    target_id: str
    request: dict[str, Any]
    status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime


class RejectBody(BaseModel):
    reason: str | None = None


def _to_response(proposal: Proposal) -> ProposalResponse:
    return ProposalResponse(
        id=proposal.id,
        workspace_id=proposal.workspace_id,
        user_id=proposal.user_id,
        target_type=proposal.target_type,
        target_id=proposal.target_id,
        request=proposal.request or {},
        status=proposal.status,
        reviewed_by=proposal.reviewed_by,
        reviewed_at=proposal.reviewed_at,
        rejection_reason=proposal.rejection_reason,
        created_at=proposal.created_at,
    )


@router.get("/workspace/{workspace_id}", response_model=list[ProposalResponse])
async def list_pending_proposals(
    workspace_id: str,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    proposals = await container.proposal_service.list_pending(workspace_id, identity.user_id)
    return [_to_response(p) for p in proposals]


@router.post("/{proposal_id}/approve", status_code=202)
async def approve_proposal(
    proposal_id: str,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    event = await container.proposal_service.approve(proposal_id, identity.user_id)
    return {"event": event_response(event)}


@router.post("/{proposal_id}/reject", response_model=ProposalResponse)
async def reject_proposal(
    proposal_id: str,
    body: RejectBody,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    proposal = await container.proposal_service.reject(proposal_id, identity.user_id, body.reason)
    return _to_response(proposal)
