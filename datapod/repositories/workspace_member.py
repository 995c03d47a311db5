"""WorkspaceMemberRepository: membership rows and the MembershipReader.

Membership writes are authorized by the permission gate before they get
here, so rows are scoped by ``(workspace_id, user_id)`` of the target member
rather than by the acting user. Member row ids are derived from that pair.
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from datapod.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from datapod.db.models.workspace import WorkspaceMember
from datapod.db.tenant import tenant_session
from datapod.events.envelope import Event, EventSource
from datapod.events.log import EventLog
from datapod.permissions.workspace import Membership, WorkspaceRole, validate_role
from datapod.repositories.base import CompletedEventEmitter

logger = structlog.get_logger(__name__)

_MEMBER_NAMESPACE = uuid.UUID("6f1c1a52-1d0e-4c1b-9a55-0c0b6e0f4d2a")


def member_id(workspace_id: str, user_id: str) -> str:
    """Stable id of the (workspace, user) membership row."""
    return str(uuid.uuid5(_MEMBER_NAMESPACE, f"{workspace_id}:{user_id}"))


def _to_membership(row: WorkspaceMember) -> Membership:
    return Membership(workspace_id=row.workspace_id, user_id=row.user_id, role=row.role)


class WorkspaceMemberRepository(CompletedEventEmitter):
    family = "workspaceMembers"
    subject_type = "workspace_member"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], event_log: EventLog):
        self.session_factory = session_factory
        self.event_log = event_log

    async def get_membership(self, workspace_id: str, user_id: str) -> Membership | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(WorkspaceMember).where(
                    WorkspaceMember.workspace_id == workspace_id,
                    WorkspaceMember.user_id == user_id,
                )
            )
            row = result.scalar_one_or_none()
            return _to_membership(row) if row is not None else None

    async def list_members(self, workspace_id: str) -> list[Membership]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(WorkspaceMember)
                .where(WorkspaceMember.workspace_id == workspace_id)
                .order_by(WorkspaceMember.created_at)
            )
            return [_to_membership(row) for row in result.scalars().all()]

    async def add(
        self,
        workspace_id: str,
        target_user_id: str,
        role: str,
        actor_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> Membership:
        """Add ``target_user_id`` to the workspace.

        Raises:
            ValidationError: unknown role
            ForbiddenError: attempt to add a second owner
            ConflictError: the user is already a member
        """
        validate_role(role)
        if role == WorkspaceRole.OWNER:
            raise ForbiddenError("Workspaces have exactly one owner")

        row = WorkspaceMember(
            id=member_id(workspace_id, target_user_id),
            workspace_id=workspace_id,
            user_id=target_user_id,
            role=role,
            invited_by=actor_id,
        )
        try:
            async with tenant_session(self.session_factory, actor_id) as session:
                session.add(row)
        except IntegrityError as exc:
            raise ConflictError(
                "User is already a member of this workspace",
                {"workspace_id": workspace_id, "user_id": target_user_id},
            ) from exc

        logger.info("workspace_member_added", workspace_id=workspace_id, member_user_id=target_user_id, role=role)
        await self.emit_added(workspace_id, target_user_id, role, actor_id, causation_id, correlation_id, source)
        return _to_membership(row)

    async def remove(
        self,
        workspace_id: str,
        target_user_id: str,
        actor_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> None:
        """Remove a member. The owner cannot be removed."""
        async with tenant_session(self.session_factory, actor_id) as session:
            result = await session.execute(
                delete(WorkspaceMember).where(
                    WorkspaceMember.workspace_id == workspace_id,
                    WorkspaceMember.user_id == target_user_id,
                    WorkspaceMember.role != WorkspaceRole.OWNER.value,
                )
            )
            if result.rowcount == 0:
                await self._raise_missing_or_owner(session, workspace_id, target_user_id)

        logger.info("workspace_member_removed", workspace_id=workspace_id, member_user_id=target_user_id)
        await self.emit_removed(workspace_id, target_user_id, actor_id, causation_id, correlation_id, source)

    async def update_role(
        self,
        workspace_id: str,
        target_user_id: str,
        new_role: str,
        actor_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> Membership:
        """Change a member's role. Ownership cannot be granted or taken this way."""
        validate_role(new_role)
        if new_role == WorkspaceRole.OWNER:
            raise ForbiddenError("Ownership cannot be assigned through a role change")

        async with tenant_session(self.session_factory, actor_id) as session:
            result = await session.execute(
                update(WorkspaceMember)
                .where(
                    WorkspaceMember.workspace_id == workspace_id,
                    WorkspaceMember.user_id == target_user_id,
                    WorkspaceMember.role != WorkspaceRole.OWNER.value,
                )
                .values(role=new_role, updated_at=datetime.now(timezone.utc))
            )
            if result.rowcount == 0:
                await self._raise_missing_or_owner(session, workspace_id, target_user_id)

        logger.info(
            "workspace_member_role_updated",
            workspace_id=workspace_id,
            member_user_id=target_user_id,
            role=new_role,
        )
        await self._emit(
            "updateRole",
            member_id(workspace_id, target_user_id),
            {"workspaceId": workspace_id, "targetUserId": target_user_id, "newRole": new_role},
            actor_id,
            causation_id,
            correlation_id,
            source,
        )
        return Membership(workspace_id=workspace_id, user_id=target_user_id, role=new_role)

    async def emit_added(
        self,
        workspace_id: str,
        target_user_id: str,
        role: str,
        actor_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> Event:
        return await self._emit(
            "add",
            member_id(workspace_id, target_user_id),
            {"workspaceId": workspace_id, "targetUserId": target_user_id, "role": role},
            actor_id,
            causation_id,
            correlation_id,
            source,
        )

    async def emit_removed(
        self,
        workspace_id: str,
        target_user_id: str,
        actor_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> Event:
        return await self._emit(
            "remove",
            member_id(workspace_id, target_user_id),
            {"workspaceId": workspace_id, "targetUserId": target_user_id},
            actor_id,
            causation_id,
            correlation_id,
            source,
        )

    async def _raise_missing_or_owner(self, session: AsyncSession, workspace_id: str, user_id: str) -> None:
        result = await session.execute(
            select(WorkspaceMember.role).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
            )
        )
        if result.scalar_one_or_none() == WorkspaceRole.OWNER.value:
            raise ForbiddenError("The workspace owner's membership cannot be changed")
        raise NotFoundError("Workspace member", user_id, {"workspace_id": workspace_id})
