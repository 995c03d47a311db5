"""Validation policy: decide whether a command takes the standard path.

This is a routing decision, not validation itself. Authorization happens in
the global validator executor. Rules are evaluated in order and the first one
that fires wins:

1. system-override: destructive operations (delete/remove/revoke) always
   validate unless the subject type's default explicitly allows a fast path.
2. role-override: viewers never fast-path a write.
3. workspace-config: ``workspace.settings["validationRules"][subject_type][op]``.
4. subject-type-default: the table below (``_default`` for unlisted types).

A failing settings lookup propagates. The gateway must not fast-path a command
because the store was unreachable.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


class PolicySource(StrEnum):
    SYSTEM_OVERRIDE = "system-override"
    ROLE_OVERRIDE = "role-override"
    WORKSPACE_CONFIG = "workspace-config"
    SUBJECT_TYPE_DEFAULT = "subject-type-default"


@dataclass(frozen=True)
class PolicyParams:
    operation: str  # action segment of the event name
    subject_type: str
    workspace_id: str | None = None
    project_id: str | None = None
    user_role: str | None = None


@dataclass(frozen=True)
class PolicyResult:
    requires_validation: bool
    reason: str
    source: PolicySource


class WorkspaceSettingsReader(Protocol):
    async def get_workspace_settings(self, workspace_id: str) -> dict[str, Any] | None:
        """Settings mapping of the workspace, or None if it does not exist."""
        ...


# create/update/delete per subject type
SUBJECT_TYPE_DEFAULTS: dict[str, dict[str, bool]] = {
    # Real-time chat writes go straight through
    "conversation_message": {"create": False, "update": False, "delete": True},
    "chat_thread": {"create": False, "update": False, "delete": True},
    # Context tracking only
    "thread_entity": {"create": False, "update": False, "delete": False},
    "user_entity_state": {"create": False, "update": False, "delete": False},
    "entity": {"create": True, "update": True, "delete": True},
    "project": {"create": True, "update": True, "delete": True},
    "workspace": {"create": True, "update": True, "delete": True},
    "workspace_member": {"create": True, "update": True, "delete": True},
    "api_key": {"create": True, "update": True, "delete": True},
    "template": {"create": True, "update": True, "delete": True},
    "_default": {"create": True, "update": True, "delete": True},
}

# Non-CRUD actions map onto the CRUD column that governs them
OPERATION_KINDS: dict[str, str] = {
    "create": "create",
    "add": "create",
    "update": "update",
    "updateRole": "update",
    "delete": "delete",
    "remove": "delete",
    "revoke": "delete",
}

READ_ONLY_ROLES = frozenset({"viewer"})


def operation_kind(operation: str) -> str:
    """CRUD kind for an action; unknown actions are treated as updates."""
    return OPERATION_KINDS.get(operation, "update")


class ValidationPolicyService:
    def __init__(self, settings_reader: WorkspaceSettingsReader | None = None):
        self.settings_reader = settings_reader

    async def requires_validation(self, params: PolicyParams) -> PolicyResult:
        kind = operation_kind(params.operation)
        defaults = SUBJECT_TYPE_DEFAULTS.get(params.subject_type, SUBJECT_TYPE_DEFAULTS["_default"])

        if kind == "delete":
            if defaults["delete"] is False:
                return PolicyResult(
                    requires_validation=False,
                    reason=f"Default allows fast path for {params.subject_type}.{params.operation}",
                    source=PolicySource.SUBJECT_TYPE_DEFAULT,
                )
            return PolicyResult(
                requires_validation=True,
                reason="Destructive operations require validation",
                source=PolicySource.SYSTEM_OVERRIDE,
            )

        if params.user_role in READ_ONLY_ROLES:
            return PolicyResult(
                requires_validation=True,
                reason=f"Role '{params.user_role}' cannot write without review",
                source=PolicySource.ROLE_OVERRIDE,
            )

        if params.workspace_id and self.settings_reader is not None:
            configured = await self._workspace_rule(params.workspace_id, params.subject_type, kind)
            if configured is not None:
                return PolicyResult(
                    requires_validation=configured,
                    reason=f"Workspace rule for {params.subject_type}.{kind}",
                    source=PolicySource.WORKSPACE_CONFIG,
                )

        return PolicyResult(
            requires_validation=defaults[kind],
            reason=f"Default for {params.subject_type}.{kind}",
            source=PolicySource.SUBJECT_TYPE_DEFAULT,
        )

    async def _workspace_rule(self, workspace_id: str, subject_type: str, kind: str) -> bool | None:
        settings = await self.settings_reader.get_workspace_settings(workspace_id)
        if not settings:
            return None
        rules = (settings.get("validationRules") or {}).get(subject_type) or {}
        value = rules.get(kind)
        if value is None:
            return None
        if not isinstance(value, bool):
            logger.warning(
                "workspace_validation_rule_ignored",
                workspace_id=workspace_id,
                subject_type=subject_type,
                operation=kind,
                value=value,
            )
            return None
        return value
