"""Tests for proposals: automated requests parked for review."""

import pytest

from datapod.commands.gateway import RequestInput
from datapod.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from datapod.events.envelope import EventSource

pytestmark = pytest.mark.unit


def automated_create(user_id="editor-1", subject_id="e1", workspace_id="w1"):
    return RequestInput(
        type="entities.create.requested",
        subject_id=subject_id,
        subject_type="entity",
        user_id=user_id,
        data={"title": "Suggested", "content": "From the assistant", "workspaceId": workspace_id},
        workspace_id=workspace_id,
        source=EventSource.AUTOMATION,
    )


async def propose(container, dispatcher, **kwargs):
    await container.gateway.emit_request_event(automated_create(**kwargs))
    await dispatcher.drain()
    [proposal] = await container.deps.proposals.find_by_workspace(kwargs.get("workspace_id", "w1"))
    return proposal


@pytest.mark.asyncio
async def test_proposal_writes_do_not_touch_event_log(container, sql_log):
    """Creating, reviewing and deleting a proposal appends nothing to the log."""
    proposals = container.deps.proposals
    before = await sql_log.count()

    proposal = await proposals.create("entity", "e1", {"type": "entities.create.requested"}, "u1", "w1")
    await proposals.mark_reviewed(proposal.id, "rejected", "owner-1", "no")
    await proposals.delete(proposal.id)

    assert await sql_log.count() == before


@pytest.mark.asyncio
async def test_automation_without_auto_approve_creates_proposal(container, dispatcher, team_workspace, sql_log):
    await team_workspace(members={"editor-1": "editor"})

    proposal = await propose(container, dispatcher)

    assert proposal.status == "pending"
    assert proposal.target_type == "entity"
    assert proposal.target_id == "e1"
    assert proposal.request["type"] == "entities.create.requested"
    assert await container.deps.entities.find("e1", "editor-1") is None
    types = [e.type for e in await sql_log.find_by_subject("e1")]
    assert types == ["entities.create.requested"]


@pytest.mark.asyncio
async def test_auto_approve_setting_skips_proposal(container, dispatcher, team_workspace):
    await team_workspace(members={"editor-1": "editor"}, settings={"autoApproveAutomation": True})

    await container.gateway.emit_request_event(automated_create())
    await dispatcher.drain()

    assert await container.deps.proposals.find_by_workspace("w1") == []
    assert (await container.deps.entities.get("e1", "editor-1")).title == "Suggested"


@pytest.mark.asyncio
async def test_approve_publishes_validated_event_and_applies_it(container, dispatcher, team_workspace, sql_log):
    await team_workspace(members={"editor-1": "editor"})
    proposal = await propose(container, dispatcher)

    event = await container.proposal_service.approve(proposal.id, "owner-1")
    await dispatcher.drain()

    assert event.type == "entities.create.validated"
    assert event.metadata["proposalId"] == proposal.id
    assert event.metadata["approvedBy"] == "owner-1"
    assert event.user_id == "editor-1"

    row = await container.deps.entities.get("e1", "editor-1")
    assert row.workspace_id == "w1"

    requested = (await sql_log.find_by_subject("e1"))[0]
    chain = await sql_log.find_by_correlation(requested.correlation_id)
    assert [e.type for e in chain] == [
        "entities.create.requested",
        "entities.create.validated",
        "entities.create.completed",
    ]
    assert (await container.deps.proposals.get(proposal.id)).status == "validated"


@pytest.mark.asyncio
async def test_reject_records_reason_without_applying(container, dispatcher, team_workspace):
    await team_workspace(members={"editor-1": "editor", "admin-1": "admin"})
    proposal = await propose(container, dispatcher)

    rejected = await container.proposal_service.reject(proposal.id, "admin-1", reason="Not now")

    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Not now"
    assert rejected.reviewed_by == "admin-1"
    assert await container.deps.entities.find("e1", "editor-1") is None


@pytest.mark.asyncio
async def test_reviewer_must_be_admin(container, dispatcher, team_workspace):
    await team_workspace(members={"editor-1": "editor"})
    proposal = await propose(container, dispatcher)

    with pytest.raises(ForbiddenError):
        await container.proposal_service.approve(proposal.id, "editor-1")
    with pytest.raises(NotFoundError):
        await container.proposal_service.reject(proposal.id, "stranger")


@pytest.mark.asyncio
async def test_reviewed_proposal_cannot_be_reviewed_again(container, dispatcher, team_workspace):
    await team_workspace(members={"editor-1": "editor"})
    proposal = await propose(container, dispatcher)
    await container.proposal_service.approve(proposal.id, "owner-1")

    with pytest.raises(ConflictError):
        await container.proposal_service.approve(proposal.id, "owner-1")
    with pytest.raises(ConflictError):
        await container.proposal_service.reject(proposal.id, "owner-1")


@pytest.mark.asyncio
async def test_list_pending_requires_membership(container, dispatcher, team_workspace):
    await team_workspace(members={"editor-1": "editor", "viewer-1": "viewer"})
    proposal = await propose(container, dispatcher)

    pending = await container.proposal_service.list_pending("w1", "viewer-1")

    assert [p.id for p in pending] == [proposal.id]
    with pytest.raises(NotFoundError):
        await container.proposal_service.list_pending("w1", "stranger")


@pytest.mark.asyncio
async def test_approval_interrupted_by_log_outage_can_be_retried(
    memory_container, dispatcher, memory_log, memory_workspace
):
    """The proposal is marked before the append fails; approving again publishes it."""
    await memory_workspace(members={"editor-1": "editor"})
    await memory_container.gateway.emit_request_event(automated_create())
    await dispatcher.drain()
    [proposal] = await memory_container.deps.proposals.find_by_workspace("w1")
    memory_log.fail_next_append = 1

    with pytest.raises(ConnectionError):
        await memory_container.proposal_service.approve(proposal.id, "owner-1")
    assert (await memory_container.deps.proposals.get(proposal.id)).status == "validated"
    assert memory_log.of_type("entities.create.validated") == []

    event = await memory_container.proposal_service.approve(proposal.id, "owner-1")
    await dispatcher.drain()

    assert event.metadata["approvedBy"] == "owner-1"
    assert [e.id for e in memory_log.of_type("entities.create.validated")] == [event.id]
    assert (await memory_container.deps.entities.get("e1", "editor-1")).title == "Suggested"
    with pytest.raises(ConflictError):
        await memory_container.proposal_service.approve(proposal.id, "owner-1")
