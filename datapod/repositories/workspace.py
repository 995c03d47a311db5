"""WorkspaceRepository: workspaces, scoped to their owner.

Creating a workspace also inserts the owner's membership in the same
transaction, so the creator can pass the permission gate immediately.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from datapod.db.models.workspace import Workspace, WorkspaceMember
from datapod.permissions.workspace import WorkspaceRole
from datapod.repositories.base import ProjectionRepository
from datapod.repositories.workspace_member import member_id


class WorkspaceRepository(ProjectionRepository[Workspace]):
    model = Workspace
    family = "workspaces"
    subject_type = "workspace"
    resource_name = "Workspace"
    field_map = {
        "name": "name",
        "description": "description",
        "type": "type",
        "settings": "settings",
    }
    summary_fields = ("name", "type")

    async def _after_insert(self, session: AsyncSession, row: Workspace) -> None:
        session.add(
            WorkspaceMember(
                id=member_id(row.id, row.user_id),
                workspace_id=row.id,
                user_id=row.user_id,
                role=WorkspaceRole.OWNER.value,
            )
        )

    def summarize(self, row: Workspace) -> dict[str, Any]:
        summary = super().summarize(row)
        summary["workspaceId"] = row.id
        return summary

    async def get_workspace_settings(self, workspace_id: str) -> dict[str, Any] | None:
        """Settings of any workspace, for internal policy lookups (not tenant-scoped)."""
        async with self.session_factory() as session:
            result = await session.execute(select(Workspace.settings).where(Workspace.id == workspace_id))
            return result.scalar_one_or_none()

    async def get_by_id(self, workspace_id: str) -> Workspace | None:
        async with self.session_factory() as session:
            return await session.get(Workspace, workspace_id)
