"""Re-export all models so Base.metadata sees them."""

from datapod.db.models.api_key import ApiKey
from datapod.db.models.entity import Entity
from datapod.db.models.event import StoredEvent
from datapod.db.models.message import ConversationMessage
from datapod.db.models.project import Project
from datapod.db.models.proposal import Proposal
from datapod.db.models.template import Template
from datapod.db.models.workspace import Workspace, WorkspaceMember

__all__ = [
    "ApiKey",
    "ConversationMessage",
    "Entity",
    "Project",
    "Proposal",
    "StoredEvent",
    "Template",
    "Workspace",
    "WorkspaceMember",
]
