"""Shared executor wiring: collaborators and the workspace authorization step."""

from dataclasses import dataclass

from datapod.dispatch.base import Dispatcher
from datapod.dispatch.schemas import DispatchMessage
from datapod.events.log import EventLog
from datapod.permissions.workspace import MembershipReader, WorkspaceRole, require_workspace_role
from datapod.repositories.api_key import ApiKeyRepository
from datapod.repositories.entity import EntityRepository
from datapod.repositories.message import ConversationMessageRepository
from datapod.repositories.project import ProjectRepository
from datapod.repositories.proposal import ProposalRepository
from datapod.repositories.template import TemplateRepository
from datapod.repositories.workspace import WorkspaceRepository
from datapod.repositories.workspace_member import WorkspaceMemberRepository

# Minimum workspace role per action
REQUIRED_ROLES: dict[str, str] = {
    "create": WorkspaceRole.EDITOR,
    "update": WorkspaceRole.EDITOR,
    "delete": WorkspaceRole.ADMIN,
    "add": WorkspaceRole.ADMIN,
    "remove": WorkspaceRole.ADMIN,
    "updateRole": WorkspaceRole.ADMIN,
    "revoke": WorkspaceRole.ADMIN,
}


@dataclass
class ExecutorDeps:
    event_log: EventLog
    dispatcher: Dispatcher
    entities: EntityRepository
    projects: ProjectRepository
    workspaces: WorkspaceRepository
    members: WorkspaceMemberRepository
    api_keys: ApiKeyRepository
    templates: TemplateRepository
    messages: ConversationMessageRepository
    proposals: ProposalRepository

    @property
    def memberships(self) -> MembershipReader:
        return self.members


async def authorize(memberships: MembershipReader, message: DispatchMessage, action: str) -> str | None:
    """Check the actor's workspace role for ``action``.

    Returns the actor's role, or None for personal resources and for
    workspaces themselves (those rows are scoped to their owner).

    Raises:
        NotFoundError: the actor is not a member of the workspace
        ForbiddenError: the actor's role is too low
    """
    if not message.workspace_id or message.subject_type == "workspace":
        return None
    minimum = REQUIRED_ROLES.get(action, WorkspaceRole.ADMIN)
    membership = await require_workspace_role(memberships, message.workspace_id, message.user_id, minimum)
    return membership.role
