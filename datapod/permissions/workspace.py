"""Workspace permission gate.

Roles are ordered viewer < editor < admin < owner and every check is
"at least". A missing membership raises NotFoundError("Workspace not found")
so an outsider cannot tell a private workspace from a missing one.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from datapod.core.exceptions import ForbiddenError, NotFoundError, ValidationError


class WorkspaceRole(StrEnum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"
    OWNER = "owner"


ROLE_HIERARCHY: dict[str, int] = {
    WorkspaceRole.VIEWER: 1,
    WorkspaceRole.EDITOR: 2,
    WorkspaceRole.ADMIN: 3,
    WorkspaceRole.OWNER: 4,
}


@dataclass(frozen=True)
class Membership:
    workspace_id: str
    user_id: str
    role: str


class MembershipReader(Protocol):
    async def get_membership(self, workspace_id: str, user_id: str) -> Membership | None:
        ...


def role_rank(role: str) -> int:
    """Rank of ``role``; unknown roles rank below viewer."""
    return ROLE_HIERARCHY.get(role, 0)


def validate_role(role: str) -> str:
    if role not in ROLE_HIERARCHY:
        raise ValidationError(
            f"Invalid role '{role}'. Must be one of: {', '.join(ROLE_HIERARCHY)}",
            {"role": role},
        )
    return role


async def require_workspace_role(
    memberships: MembershipReader,
    workspace_id: str,
    user_id: str,
    minimum_role: str,
) -> Membership:
    """Return the caller's membership if its role is at least ``minimum_role``.

    Raises:
        NotFoundError: no membership for (workspace_id, user_id)
        ForbiddenError: the membership's role ranks below ``minimum_role``
    """
    membership = await memberships.get_membership(workspace_id, user_id)
    if membership is None:
        raise NotFoundError("Workspace", context={"workspace_id": workspace_id})

    if role_rank(membership.role) < role_rank(minimum_role):
        raise ForbiddenError(
            f"Requires {minimum_role} role or higher (you have: {membership.role})",
            {"workspace_id": workspace_id, "required_role": minimum_role, "role": membership.role},
        )
    return membership


async def has_workspace_role(
    memberships: MembershipReader,
    workspace_id: str,
    user_id: str,
    minimum_role: str,
) -> bool:
    """Non-throwing variant of require_workspace_role, for conditional logic only."""
    try:
        await require_workspace_role(memberships, workspace_id, user_id, minimum_role)
    except (NotFoundError, ForbiddenError):
        return False
    return True


def require_resource_owner(resource: Any, user_id: str) -> None:
    """Strict ownership check for resources that are not workspace-scoped.

    ``resource`` may be a mapping or an object with a ``user_id`` attribute.
    """
    owner = resource.get("user_id") if isinstance(resource, dict) else getattr(resource, "user_id", None)
    if owner is None or owner != user_id:
        raise ForbiddenError("Only the resource owner can perform this action")


async def require_viewer(memberships: MembershipReader, workspace_id: str, user_id: str) -> Membership:
    return await require_workspace_role(memberships, workspace_id, user_id, WorkspaceRole.VIEWER)


async def require_editor(memberships: MembershipReader, workspace_id: str, user_id: str) -> Membership:
    return await require_workspace_role(memberships, workspace_id, user_id, WorkspaceRole.EDITOR)


async def require_admin(memberships: MembershipReader, workspace_id: str, user_id: str) -> Membership:
    return await require_workspace_role(memberships, workspace_id, user_id, WorkspaceRole.ADMIN)


async def require_owner(memberships: MembershipReader, workspace_id: str, user_id: str) -> Membership:
    return await require_workspace_role(memberships, workspace_id, user_id, WorkspaceRole.OWNER)
