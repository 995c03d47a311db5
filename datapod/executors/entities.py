"""Entities executor: notes, tasks and documents."""

from typing import Any

from datapod.dispatch.registry import Handler
from datapod.executors.crud import crud_executor
from datapod.permissions.workspace import MembershipReader
from datapod.repositories.entity import EntityRepository

TITLE_MAX = 100
PREVIEW_MAX = 500


def prepare_entity(data: dict[str, Any]) -> dict[str, Any]:
    """Fill in title and preview from the content when the request omits them."""
    prepared = dict(data)
    entity_type = prepared.get("entityType") or prepared.get("entity_type") or "note"
    content = prepared.get("content") or ""
    if not prepared.get("title"):
        first_line = content.split("\n", 1)[0].strip()[:TITLE_MAX]
        prepared["title"] = first_line or f"Untitled {entity_type}"
    if not prepared.get("preview") and content:
        prepared["preview"] = content[:PREVIEW_MAX]
    return prepared


def entities_executor(repository: EntityRepository, memberships: MembershipReader) -> Handler:
    return crud_executor(repository, memberships, prepare_create=prepare_entity)
