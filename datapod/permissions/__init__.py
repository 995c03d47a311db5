from datapod.permissions.workspace import (
    ROLE_HIERARCHY,
    Membership,
    MembershipReader,
    WorkspaceRole,
    has_workspace_role,
    require_admin,
    require_editor,
    require_owner,
    require_resource_owner,
    require_viewer,
    require_workspace_role,
)

__all__ = [
    "ROLE_HIERARCHY",
    "Membership",
    "MembershipReader",
    "WorkspaceRole",
    "has_workspace_role",
    "require_admin",
    "require_editor",
    "require_owner",
    "require_resource_owner",
    "require_viewer",
    "require_workspace_role",
]
