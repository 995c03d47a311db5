"""Per-type payload schemas.

Event types with a registered schema have their ``data`` validated at
construction time. Types without one accept any mapping. Schemas ignore
unknown keys so producers can carry extra context (``workspaceId``,
``requestId``) without breaking older consumers.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class EntityCreatePayload(_Payload):
    title: str | None = None
    entity_type: str = Field(default="note", alias="entityType")
    preview: str | None = None
    content: str | None = None
    document_id: str | None = Field(default=None, alias="documentId")
    metadata: dict[str, Any] | None = None


class EntityUpdatePayload(_Payload):
    title: str | None = None
    preview: str | None = None
    content: str | None = None
    metadata: dict[str, Any] | None = None


class ProjectCreatePayload(_Payload):
    name: str = Field(min_length=1)
    description: str | None = None
    status: str | None = None


class WorkspaceCreatePayload(_Payload):
    name: str = Field(min_length=1)
    description: str | None = None
    type: str = "personal"


class MemberAddPayload(_Payload):
    workspace_id: str = Field(alias="workspaceId")
    target_user_id: str = Field(alias="targetUserId", min_length=1)
    role: str = "viewer"


class MemberRemovePayload(_Payload):
    workspace_id: str = Field(alias="workspaceId")
    target_user_id: str = Field(alias="targetUserId", min_length=1)


class MemberUpdateRolePayload(_Payload):
    workspace_id: str = Field(alias="workspaceId")
    target_user_id: str = Field(alias="targetUserId", min_length=1)
    new_role: str = Field(alias="newRole")


class ApiKeyCreatePayload(_Payload):
    key_name: str = Field(alias="keyName", min_length=1)
    key_prefix: str = Field(alias="keyPrefix", min_length=1)
    key_hash: str = Field(alias="keyHash", min_length=64, max_length=64)
    scope: list[str] = Field(default_factory=list)


class TemplateCreatePayload(_Payload):
    name: str = Field(min_length=1)
    target_type: str = Field(alias="targetType")
    config: dict[str, Any] = Field(default_factory=dict)


class MessageCreatePayload(_Payload):
    thread_id: str = Field(alias="threadId", min_length=1)
    content: str
    role: str = "user"


class DenialPayload(_Payload):
    requested_type: str = Field(alias="requestedType")
    reason: str


def _both_phases(event_prefix: str, schema: type[BaseModel]) -> dict[str, type[BaseModel]]:
    return {f"{event_prefix}.requested": schema, f"{event_prefix}.validated": schema}


PAYLOAD_SCHEMAS: dict[str, type[BaseModel]] = {
    **_both_phases("entities.create", EntityCreatePayload),
    **_both_phases("entities.update", EntityUpdatePayload),
    **_both_phases("projects.create", ProjectCreatePayload),
    **_both_phases("workspaces.create", WorkspaceCreatePayload),
    **_both_phases("workspaceMembers.add", MemberAddPayload),
    **_both_phases("workspaceMembers.remove", MemberRemovePayload),
    **_both_phases("workspaceMembers.updateRole", MemberUpdateRolePayload),
    **_both_phases("apiKeys.create", ApiKeyCreatePayload),
    **_both_phases("templates.create", TemplateCreatePayload),
    **_both_phases("conversationMessages.create", MessageCreatePayload),
    "requests.deny.completed": DenialPayload,
}


def get_payload_schema(event_type: str) -> type[BaseModel] | None:
    return PAYLOAD_SCHEMAS.get(event_type)


def register_payload_schema(event_type: str, schema: type[BaseModel]) -> None:
    """Register (or replace) the payload schema for an event type."""
    PAYLOAD_SCHEMAS[event_type] = schema
