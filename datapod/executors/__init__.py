"""Executors: the global validator plus one handler per projection family."""

from datapod.core.config import Settings, get_settings
from datapod.dispatch.registry import ExecutorRegistry
from datapod.executors.api_keys import api_keys_executor
from datapod.executors.base import ExecutorDeps
from datapod.executors.crud import crud_executor
from datapod.executors.entities import entities_executor
from datapod.executors.global_validator import GLOBAL_VALIDATOR_ID, global_validator
from datapod.executors.workspace_members import workspace_members_executor


def build_executor_registry(
    deps: ExecutorDeps,
    settings: Settings | None = None,
    registry: ExecutorRegistry | None = None,
) -> ExecutorRegistry:
    """Register the global validator and every family executor.

    Pass ``registry`` to fill one the dispatcher already holds.
    """
    settings = settings or get_settings()
    registry = registry if registry is not None else ExecutorRegistry()

    def limit(executor_id: str) -> int:
        return settings.executor_concurrency.get(executor_id, settings.default_executor_concurrency)

    registry.register(GLOBAL_VALIDATOR_ID, ["*.*.requested"], concurrency=limit(GLOBAL_VALIDATOR_ID))(
        global_validator(deps)
    )

    handlers = {
        "entities": entities_executor(deps.entities, deps.memberships),
        "projects": crud_executor(deps.projects, deps.memberships),
        "workspaces": crud_executor(deps.workspaces, deps.memberships),
        "workspaceMembers": workspace_members_executor(deps.members),
        "apiKeys": api_keys_executor(deps.api_keys, deps.memberships),
        "templates": crud_executor(deps.templates, deps.memberships),
        "conversationMessages": crud_executor(deps.messages, deps.memberships),
    }
    for family, handler in handlers.items():
        registry.register(family, [f"{family}.*.validated"], concurrency=limit(family))(handler)

    return registry


__all__ = ["ExecutorDeps", "build_executor_registry"]
