"""Projection repositories: tenant-scoped writes that append completed events."""

from datapod.repositories.api_key import ApiKeyRepository
from datapod.repositories.base import ProjectionRepository, row_to_dict
from datapod.repositories.entity import EntityRepository
from datapod.repositories.message import ConversationMessageRepository
from datapod.repositories.project import ProjectRepository
from datapod.repositories.proposal import ProposalRepository
from datapod.repositories.template import TemplateRepository
from datapod.repositories.workspace import WorkspaceRepository
from datapod.repositories.workspace_member import WorkspaceMemberRepository

__all__ = [
    "ApiKeyRepository",
    "ConversationMessageRepository",
    "EntityRepository",
    "ProjectRepository",
    "ProjectionRepository",
    "ProposalRepository",
    "TemplateRepository",
    "WorkspaceMemberRepository",
    "WorkspaceRepository",
    "row_to_dict",
]
