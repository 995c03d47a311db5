"""EntityRepository: notes, tasks and documents. Deletes are soft."""

from datetime import datetime, timezone

import structlog
from sqlalchemy import select

from datapod.db.models.entity import Entity
from datapod.events.envelope import Event, EventSource
from datapod.repositories.base import ProjectionRepository

logger = structlog.get_logger(__name__)


class EntityRepository(ProjectionRepository[Entity]):
    model = Entity
    family = "entities"
    subject_type = "entity"
    resource_name = "Entity"
    field_map = {
        "title": "title",
        "preview": "preview",
        "content": "content",
        "entityType": "entity_type",
        "entity_type": "entity_type",
        "documentId": "document_id",
        "document_id": "document_id",
        "workspaceId": "workspace_id",
        "workspace_id": "workspace_id",
        "projectId": "project_id",
        "project_id": "project_id",
        "metadata": "metadata_",
    }
    summary_fields = ("entity_type", "title")

    def _scoped(self, row_id: str, user_id: str) -> list:
        # Soft-deleted rows are invisible to every read and write
        return [Entity.id == row_id, Entity.user_id == user_id, Entity.deleted_at.is_(None)]

    def _scoped_list(self, user_id: str) -> list:
        return [Entity.user_id == user_id, Entity.deleted_at.is_(None)]

    def _update_values(self, data: dict) -> dict:
        values = super()._update_values(data)
        # Ownership and placement are fixed at creation
        values.pop("workspace_id", None)
        return values

    async def delete(
        self,
        row_id: str,
        user_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> None:
        """Soft-delete: stamp ``deleted_at``. A second delete raises NotFoundError."""
        now = datetime.now(timezone.utc)
        await self._scoped_write(row_id, user_id, {"deleted_at": now, "updated_at": now})

        logger.info("projection_deleted", subject_type=self.subject_type, row_id=row_id, soft=True)
        await self.emit_deleted(row_id, user_id, causation_id, correlation_id, source, deleted_at=now)

    async def emit_deleted(
        self,
        row_id: str,
        user_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
        deleted_at: datetime | None = None,
    ) -> Event:
        if deleted_at is None:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Entity.deleted_at).where(Entity.id == row_id, Entity.user_id == user_id)
                )
                deleted_at = result.scalar_one_or_none()
        data = {"id": row_id, "userId": user_id}
        if deleted_at is not None:
            data["deletedAt"] = deleted_at.isoformat()
        return await self._emit("delete", row_id, data, user_id, causation_id, correlation_id, source)
