"""FastAPI dependencies shared by the routes."""

from fastapi import Request

from datapod.services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """The ServiceContainer built at startup (``app.state.container``)."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container not initialized")
    return container


async def role_in_workspace(container: ServiceContainer, workspace_id: str | None, user_id: str) -> str | None:
    """The caller's role in ``workspace_id``, for the validation policy."""
    if not workspace_id:
        return None
    membership = await container.members.get_membership(workspace_id, user_id)
    return membership.role if membership else None
