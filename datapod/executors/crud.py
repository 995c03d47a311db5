"""Generic CRUD executor for a projection family.

Redelivery is expected, so every branch tolerates replay:
- create: a ConflictError for the actor's own row means the insert already
  happened; the completed event is re-appended under its derived id (a no-op
  if it was already logged)
- update: writes the same values again
- delete: NotFoundError means the row is already gone. If the row existed
  when this request first ran, the earlier attempt deleted it and its
  completed event is re-appended when missing
"""

from collections.abc import Callable
from typing import Any

import structlog

from datapod.core.exceptions import ConflictError, NotFoundError, UnknownActionError
from datapod.dispatch.registry import ExecutionContext, Handler
from datapod.executors.base import authorize
from datapod.permissions.workspace import MembershipReader
from datapod.repositories.base import ProjectionRepository

logger = structlog.get_logger(__name__)

CRUD = ("create", "update", "delete")


async def create_idempotent(
    repository: ProjectionRepository,
    ctx: ExecutionContext,
    data: dict[str, Any],
) -> dict[str, Any] | None:
    msg = ctx.event
    try:
        row = await repository.create(
            data,
            msg.user_id,
            row_id=msg.subject_id,
            causation_id=msg.id,
            correlation_id=msg.correlation_id,
            source=msg.source,
        )
    except ConflictError:
        existing = await repository.find(msg.subject_id, msg.user_id)
        if existing is None:
            # Taken by another tenant, or created then deleted
            if await repository.completed_logged("create", msg.id):
                logger.info("create_already_applied", subject_id=msg.subject_id, family=repository.family)
                return None
            raise
        logger.info("create_replayed", subject_id=msg.subject_id, family=repository.family)
        await repository.emit_completed(
            existing, "create", msg.user_id, msg.id, msg.correlation_id, msg.source
        )
        return repository.to_result(existing)
    return repository.to_result(row)


async def _exists(repository: ProjectionRepository, ctx: ExecutionContext) -> bool:
    return await repository.find(ctx.event.subject_id, ctx.event.user_id) is not None


async def delete_idempotent(repository: ProjectionRepository, ctx: ExecutionContext, existed: bool) -> bool:
    """Returns False when the row was already gone before this request.

    ``existed`` is whether the row was there on the first attempt.
    """
    msg = ctx.event
    try:
        await repository.delete(
            msg.subject_id,
            msg.user_id,
            causation_id=msg.id,
            correlation_id=msg.correlation_id,
            source=msg.source,
        )
    except NotFoundError:
        if existed:
            if not await repository.completed_logged("delete", msg.id):
                logger.warning("delete_completed_missing", subject_id=msg.subject_id, family=repository.family)
                await repository.emit_deleted(
                    msg.subject_id, msg.user_id, msg.id, msg.correlation_id, msg.source
                )
            return True
        logger.info("delete_already_applied", subject_id=msg.subject_id, family=repository.family)
        return False
    return True


def crud_executor(
    repository: ProjectionRepository,
    memberships: MembershipReader,
    prepare_create: Callable[[dict[str, Any]], dict[str, Any]] | None = None,
) -> Handler:
    """Build the handler for ``{family}.*.validated``."""

    async def handle(ctx: ExecutionContext) -> dict[str, Any] | None:
        msg, action = ctx.event, ctx.name.action
        if action not in CRUD:
            raise UnknownActionError(msg.name, action)

        await ctx.step.run("check-permissions", lambda: authorize(memberships, msg, action))
        step_label = f"{action}-{repository.subject_type}"

        if action == "create":
            data = dict(msg.data)
            if msg.workspace_id:
                data.setdefault("workspaceId", msg.workspace_id)
            if prepare_create:
                data = prepare_create(data)
            return await ctx.step.run(step_label, lambda: create_idempotent(repository, ctx, data))

        if action == "update":

            async def apply_update() -> dict[str, Any]:
                row = await repository.update(
                    msg.subject_id,
                    msg.data,
                    msg.user_id,
                    causation_id=msg.id,
                    correlation_id=msg.correlation_id,
                    source=msg.source,
                )
                return repository.to_result(row)

            return await ctx.step.run(step_label, apply_update)

        existed = await ctx.step.run(f"find-{repository.subject_type}", lambda: _exists(repository, ctx))
        deleted = await ctx.step.run(step_label, lambda: delete_idempotent(repository, ctx, existed))
        return {"id": msg.subject_id, "deleted": deleted}

    handle.__name__ = f"handle_{repository.family}"
    return handle
