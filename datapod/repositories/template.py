"""TemplateRepository: reusable entity and document templates."""

from sqlalchemy import or_, select

from datapod.db.models.template import Template
from datapod.repositories.base import ProjectionRepository


class TemplateRepository(ProjectionRepository[Template]):
    model = Template
    family = "templates"
    subject_type = "template"
    resource_name = "Template"
    field_map = {
        "name": "name",
        "description": "description",
        "targetType": "target_type",
        "target_type": "target_type",
        "entityType": "entity_type",
        "entity_type": "entity_type",
        "config": "config",
        "isDefault": "is_default",
        "is_default": "is_default",
        "isPublic": "is_public",
        "is_public": "is_public",
        "workspaceId": "workspace_id",
        "workspace_id": "workspace_id",
    }
    summary_fields = ("name", "target_type", "version")

    def _update_values(self, data: dict) -> dict:
        values = super()._update_values(data)
        values.pop("workspace_id", None)
        if "config" in values:
            # Config edits bump the version; metadata edits don't
            values["version"] = Template.version + 1
        return values

    async def list_available(self, user_id: str, target_type: str | None = None) -> list[Template]:
        """The caller's templates plus public ones, defaults first."""
        query = select(Template).where(or_(Template.user_id == user_id, Template.is_public.is_(True)))
        if target_type:
            query = query.where(Template.target_type == target_type)
        async with self.session_factory() as session:
            result = await session.execute(query.order_by(Template.is_default.desc(), Template.name))
            return list(result.scalars().all())
