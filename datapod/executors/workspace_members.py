"""Workspace members executor: add, remove and updateRole.

Every branch requires the actor to be at least admin of the workspace. Replays
are tolerated: re-adding an existing member with the same role, or removing
one that is already gone, succeeds without a second write. The member's role
is recorded as a step before add and remove, so a retry can tell whether an
earlier attempt of this request made the change and re-append its completed
event if that append never happened.
"""

from typing import Any

import structlog

from datapod.core.exceptions import ConflictError, NotFoundError, UnknownActionError, ValidationError
from datapod.dispatch.registry import ExecutionContext, Handler
from datapod.executors.base import authorize
from datapod.repositories.workspace_member import WorkspaceMemberRepository

logger = structlog.get_logger(__name__)


def workspace_members_executor(members: WorkspaceMemberRepository) -> Handler:
    async def handle_workspace_members(ctx: ExecutionContext) -> dict[str, Any] | None:
        msg, action = ctx.event, ctx.name.action
        if action not in ("add", "remove", "updateRole"):
            raise UnknownActionError(msg.name, action)

        workspace_id = msg.data.get("workspaceId") or msg.workspace_id
        target_user_id = msg.data.get("targetUserId")
        if not workspace_id or not target_user_id:
            raise ValidationError("Member commands need workspaceId and targetUserId", {"event_id": msg.id})
        if msg.workspace_id != workspace_id:
            msg = msg.model_copy(update={"workspace_id": workspace_id})

        await ctx.step.run("check-permissions", lambda: authorize(members, msg, action))
        audit = {"causation_id": msg.id, "correlation_id": msg.correlation_id, "source": msg.source}

        async def current_role() -> str | None:
            membership = await members.get_membership(workspace_id, target_user_id)
            return membership.role if membership is not None else None

        if action == "add":
            role = msg.data.get("role", "viewer")
            role_before = await ctx.step.run("find-member", current_role)

            async def add() -> dict[str, Any]:
                try:
                    membership = await members.add(workspace_id, target_user_id, role, msg.user_id, **audit)
                except ConflictError:
                    existing = await members.get_membership(workspace_id, target_user_id)
                    if existing is None or existing.role != role:
                        raise
                    if role_before is None and not await members.completed_logged("add", msg.id):
                        logger.warning(
                            "member_add_completed_missing", workspace_id=workspace_id, member_user_id=target_user_id
                        )
                        await members.emit_added(workspace_id, target_user_id, role, msg.user_id, **audit)
                    else:
                        logger.info(
                            "member_add_already_applied", workspace_id=workspace_id, member_user_id=target_user_id
                        )
                    membership = existing
                return {"workspaceId": workspace_id, "userId": membership.user_id, "role": membership.role}

            return await ctx.step.run("add-member", add)

        if action == "remove":
            role_before = await ctx.step.run("find-member", current_role)

            async def remove() -> dict[str, Any]:
                try:
                    await members.remove(workspace_id, target_user_id, msg.user_id, **audit)
                except NotFoundError:
                    if role_before is None:
                        logger.info(
                            "member_remove_already_applied", workspace_id=workspace_id, member_user_id=target_user_id
                        )
                        return {"workspaceId": workspace_id, "userId": target_user_id, "removed": False}
                    if not await members.completed_logged("remove", msg.id):
                        logger.warning(
                            "member_remove_completed_missing", workspace_id=workspace_id, member_user_id=target_user_id
                        )
                        await members.emit_removed(workspace_id, target_user_id, msg.user_id, **audit)
                return {"workspaceId": workspace_id, "userId": target_user_id, "removed": True}

            return await ctx.step.run("remove-member", remove)

        new_role = msg.data.get("newRole")

        async def update_role() -> dict[str, Any]:
            membership = await members.update_role(workspace_id, target_user_id, new_role, msg.user_id, **audit)
            return {"workspaceId": workspace_id, "userId": membership.user_id, "role": membership.role}

        return await ctx.step.run("update-member-role", update_role)

    return handle_workspace_members
