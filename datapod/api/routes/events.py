"""Read access to the event log.

A caller sees their own events and the events of workspaces they belong to.
Everything else is filtered out, so another tenant's stream reads as empty.
"""

from fastapi import APIRouter, Depends

from datapod.api.deps import get_container
from datapod.api.routes.commands import event_response
from datapod.core.auth import SessionIdentity, require_auth
from datapod.events.envelope import Event
from datapod.services.container import ServiceContainer

router = APIRouter()


async def visible_events(container: ServiceContainer, events: list[Event], user_id: str) -> list[Event]:
    membership_cache: dict[str, bool] = {}
    visible = []
    for event in events:
        if event.user_id == user_id:
            visible.append(event)
            continue
        workspace_id = event.metadata.get("workspaceId")
        if not workspace_id:
            continue
        if workspace_id not in membership_cache:
            membership_cache[workspace_id] = await container.members.get_membership(workspace_id, user_id) is not None
        if membership_cache[workspace_id]:
            visible.append(event)
    return visible


@router.get("/subject/{subject_id}")
async def events_by_subject(
    subject_id: str,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    events = await container.event_log.find_by_subject(subject_id)
    return [event_response(e) for e in await visible_events(container, events, identity.user_id)]


@router.get("/correlation/{correlation_id}")
async def events_by_correlation(
    correlation_id: str,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    events = await container.event_log.find_by_correlation(correlation_id)
    return [event_response(e) for e in await visible_events(container, events, identity.user_id)]
