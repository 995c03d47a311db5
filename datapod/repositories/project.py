"""ProjectRepository: projects grouping entities."""

from datapod.core.exceptions import ValidationError
from datapod.db.models.project import Project
from datapod.repositories.base import ProjectionRepository

PROJECT_STATUSES = ("active", "archived", "completed")


class ProjectRepository(ProjectionRepository[Project]):
    model = Project
    family = "projects"
    subject_type = "project"
    resource_name = "Project"
    field_map = {
        "name": "name",
        "description": "description",
        "status": "status",
        "settings": "settings",
        "metadata": "metadata_",
        "workspaceId": "workspace_id",
        "workspace_id": "workspace_id",
    }
    summary_fields = ("name", "status")

    def _check_status(self, values: dict) -> dict:
        status = values.get("status")
        if status is not None and status not in PROJECT_STATUSES:
            raise ValidationError(
                f"Invalid project status '{status}'. Must be one of: {', '.join(PROJECT_STATUSES)}",
                {"status": status},
            )
        return values

    def _create_values(self, data: dict) -> dict:
        return self._check_status(super()._create_values(data))

    def _update_values(self, data: dict) -> dict:
        values = self._check_status(super()._update_values(data))
        values.pop("workspace_id", None)
        return values
