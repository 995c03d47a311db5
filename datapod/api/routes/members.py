"""Workspace membership routes.

Mutations are ``workspaceMembers.*`` commands. The subject id is the
deterministic membership row id, so every command about one member of one
workspace lands on the same subject stream.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from datapod.api.deps import get_container
from datapod.api.routes.commands import emit_command, event_response
from datapod.core.auth import SessionIdentity, require_auth
from datapod.events.types import FAMILIES
from datapod.permissions.workspace import WorkspaceRole, require_viewer
from datapod.repositories.workspace_member import member_id
from datapod.services.container import ServiceContainer

router = APIRouter()

MEMBERS = FAMILIES["workspaceMembers"]


class MemberAddBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    role: WorkspaceRole = WorkspaceRole.VIEWER


class MemberRoleBody(BaseModel):
    role: WorkspaceRole


class MemberResponse(BaseModel):
    workspace_id: str
    user_id: str
    role: str


@router.get("/workspaces/{workspace_id}/members", response_model=list[MemberResponse])
async def list_members(
    workspace_id: str,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    await require_viewer(container.members, workspace_id, identity.user_id)
    members = await container.members.list_members(workspace_id)
    return [MemberResponse(workspace_id=m.workspace_id, user_id=m.user_id, role=m.role) for m in members]


@router.post("/workspaces/{workspace_id}/members", status_code=202)
async def add_member(
    workspace_id: str,
    body: MemberAddBody,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    event = await emit_command(
        container,
        identity,
        MEMBERS,
        "add",
        member_id(workspace_id, body.user_id),
        {"targetUserId": body.user_id, "role": body.role.value},
        workspace_id=workspace_id,
    )
    return {"event": event_response(event)}


@router.patch("/workspaces/{workspace_id}/members/{user_id}", status_code=202)
async def update_member_role(
    workspace_id: str,
    user_id: str,
    body: MemberRoleBody,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    event = await emit_command(
        container,
        identity,
        MEMBERS,
        "updateRole",
        member_id(workspace_id, user_id),
        {"targetUserId": user_id, "newRole": body.role.value},
        workspace_id=workspace_id,
    )
    return {"event": event_response(event)}


@router.delete("/workspaces/{workspace_id}/members/{user_id}", status_code=202)
async def remove_member(
    workspace_id: str,
    user_id: str,
    identity: SessionIdentity = Depends(require_auth),
    container: ServiceContainer = Depends(get_container),
):
    event = await emit_command(
        container,
        identity,
        MEMBERS,
        "remove",
        member_id(workspace_id, user_id),
        {"targetUserId": user_id},
        workspace_id=workspace_id,
    )
    return {"event": event_response(event)}
