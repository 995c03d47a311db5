"""API keys executor: CRUD plus revoke.

Results never carry the key hash, so it stays out of step records.
"""

from typing import Any

import structlog

from datapod.core.exceptions import NotFoundError
from datapod.dispatch.registry import ExecutionContext, Handler
from datapod.executors.base import authorize
from datapod.executors.crud import crud_executor
from datapod.permissions.workspace import MembershipReader
from datapod.repositories.api_key import ApiKeyRepository

logger = structlog.get_logger(__name__)


def api_keys_executor(repository: ApiKeyRepository, memberships: MembershipReader) -> Handler:
    crud = crud_executor(repository, memberships)

    async def handle_api_keys(ctx: ExecutionContext) -> dict[str, Any] | None:
        if ctx.name.action != "revoke":
            return await crud(ctx)

        msg = ctx.event
        await ctx.step.run("check-permissions", lambda: authorize(memberships, msg, "revoke"))

        async def is_active() -> bool:
            row = await repository.find(msg.subject_id, msg.user_id)
            return row is not None and bool(row.is_active)

        was_active = await ctx.step.run("find-api_key", is_active)

        async def revoke() -> dict[str, Any] | None:
            try:
                row = await repository.revoke(
                    msg.subject_id,
                    msg.user_id,
                    reason=msg.data.get("reason"),
                    causation_id=msg.id,
                    correlation_id=msg.correlation_id,
                    source=msg.source,
                )
            except NotFoundError:
                # Someone else's key stays hidden
                existing = await repository.find(msg.subject_id, msg.user_id)
                if existing is None:
                    raise
                if not was_active:
                    return None
                if not await repository.completed_logged("revoke", msg.id):
                    logger.warning("api_key_revoke_completed_missing", row_id=msg.subject_id)
                    await repository.emit_completed(
                        existing, "revoke", msg.user_id, msg.id, msg.correlation_id, msg.source
                    )
                return repository.to_result(existing)
            return repository.to_result(row)

        return await ctx.step.run("revoke-api_key", revoke)

    return handle_api_keys
