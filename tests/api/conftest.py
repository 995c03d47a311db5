"""API-specific test fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient

from datapod.core.auth import SessionIdentity, require_auth
from datapod.main import create_app


def override_auth(user_id: str):
    """Create an auth override that returns a specific user."""

    async def _override():
        return SessionIdentity(authenticated=True, user_id=user_id, claims={"sub": user_id})

    return _override


@pytest.fixture
def app(container):
    app = create_app(container=container)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def as_user(app):
    """Switch the acting user of subsequent requests."""

    def switch(user_id: str | None) -> None:
        if user_id is None:
            app.dependency_overrides.pop(require_auth, None)
        else:
            app.dependency_overrides[require_auth] = override_auth(user_id)

    return switch


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
