"""Command routes: every mutation of a projection family goes through the gateway.

Responses are 202 with the logged event. The projection is written later by
the family executor; clients follow progress through the event routes using
the returned ``correlation_id``.
"""

import uuid
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from datapod.api.deps import get_container, role_in_workspace
from datapod.commands.gateway import RequestInput
from datapod.core.auth import SessionIdentity, require_auth
from datapod.core.exceptions import NotFoundError, ValidationError
from datapod.events.envelope import Event, EventSource
from datapod.events.types import FAMILIES, EventName, Family, Phase
from datapod.middleware.correlation import get_correlation_id
from datapod.repositories.api_key import generate_api_key
from datapod.services.container import ServiceContainer

router = APIRouter()

Priority = Literal["critical", "high", "normal", "low"]


class CommandBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject_id: str | None = Field(default=None, alias="subjectId")
    data: dict[str, Any] = Field(default_factory=dict)
    workspace_id: str | None = Field(default=None, alias="workspaceId")
    project_id: str | None = Field(default=None, alias="projectId")
    priority: Priority | None = None
    source: EventSource = EventSource.API


class RevokeBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: str | None = None
    workspace_id: str | None = Field(default=None, alias="workspaceId")


def event_response(event: Event) -> dict[str, Any]:
    return event.model_dump(mode="json")


def _family_with_action(name: str, action: str) -> Family:
    family = FAMILIES.get(name)
    if family is None:
        raise NotFoundError("Command family", name)
    if action not in family.actions:
        raise ValidationError(
            f"Family '{name}' has no '{action}' command",
            {"family": name, "action": action, "actions": list(family.actions)},
        )
    return family


async def emit_command(
    container: ServiceContainer,
    identity: SessionIdentity,
    family: Family,
    action: str,
    subject_id: str,
    data: dict[str, Any],
    workspace_id: str | None = None,
    project_id: str | None = None,
    priority: str | None = None,
    source: EventSource | str = EventSource.API,
) -> Event:
    if workspace_id:
        data = {**data, "workspaceId": workspace_id}
    return await container.gateway.emit_request_event(
        RequestInput(
            type=str(EventName(family.name, action, Phase.REQUESTED)),
            subject_id=subject_id,
            subject_type=family.subject_type,
            user_id=identity.user_id,
            data=data,
            workspace_id=workspace_id,
            project_id=project_id,
            user_role=await role_in_workspace(container, workspace_id, identity.user_id),
            source=source,
            correlation_id=get_correlation_id(),
            priority=priority,
        )
    )


@router.post("/{family}", status_code=202)
async def create_command(
    family: str,
    body: CommandBody,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    """Request creation of a row in ``family``.

    For ``apiKeys`` the key is generated here: only its hash and prefix enter
    the log, and the plaintext is returned once in ``apiKey``.
    """
    target = _family_with_action(family, "create")
    data = dict(body.data)
    plaintext = None
    if target.name == "apiKeys":
        plaintext, prefix, key_hash = generate_api_key()
        data.update(keyPrefix=prefix, keyHash=key_hash)

    event = await emit_command(
        container,
        identity,
        target,
        "create",
        body.subject_id or str(uuid.uuid4()),
        data,
        workspace_id=body.workspace_id,
        project_id=body.project_id,
        priority=body.priority,
        source=body.source,
    )
    response: dict[str, Any] = {"event": event_response(event)}
    if plaintext is not None:
        response["apiKey"] = plaintext
    return response


@router.patch("/{family}/{subject_id}", status_code=202)
async def update_command(
    family: str,
    subject_id: str,
    body: CommandBody,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    target = _family_with_action(family, "update")
    event = await emit_command(
        container,
        identity,
        target,
        "update",
        subject_id,
        body.data,
        workspace_id=body.workspace_id,
        project_id=body.project_id,
        priority=body.priority,
        source=body.source,
    )
    return {"event": event_response(event)}


@router.delete("/{family}/{subject_id}", status_code=202)
async def delete_command(
    family: str,
    subject_id: str,
    workspace_id: str | None = Query(default=None, alias="workspaceId"),
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    target = _family_with_action(family, "delete")
    event = await emit_command(container, identity, target, "delete", subject_id, {}, workspace_id=workspace_id)
    return {"event": event_response(event)}


@router.post("/apiKeys/{key_id}/revoke", status_code=202)
async def revoke_api_key(
    key_id: str,
    body: RevokeBody,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    data = {"reason": body.reason} if body.reason else {}
    event = await emit_command(
        container, identity, FAMILIES["apiKeys"], "revoke", key_id, data, workspace_id=body.workspace_id
    )
    return {"event": event_response(event)}


@router.post("/commands/{event_id}/redispatch", status_code=202)
async def redispatch_command(
    event_id: str,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    """Re-send a logged command whose dispatch failed (503 on the original call)."""
    event = await container.event_log.find_by_id(event_id)
    if event is None or event.user_id != identity.user_id:
        raise NotFoundError("Event", event_id)
    event = await container.gateway.redispatch(event_id)
    return {"event": event_response(event)}
