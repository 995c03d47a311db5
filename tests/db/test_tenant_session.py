"""Tests for tenant_session: the acting user is bound for one transaction only."""

import pytest
import structlog
from sqlalchemy import select

from datapod.db.models.entity import Entity
from datapod.db.tenant import current_user_id, tenant_session

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_binds_user_inside_and_releases_after(session_factory):
    async with tenant_session(session_factory, "u1") as session:
        session.add(Entity(id="e1", user_id="u1", title="Kept"))
        assert current_user_id() == "u1"
        assert structlog.contextvars.get_contextvars()["tenant_user_id"] == "u1"

    assert current_user_id() is None
    assert "tenant_user_id" not in structlog.contextvars.get_contextvars()
    async with session_factory() as session:
        assert (await session.execute(select(Entity.title))).scalar_one() == "Kept"


@pytest.mark.asyncio
async def test_releases_user_and_rolls_back_on_error(session_factory):
    with pytest.raises(RuntimeError, match="boom"):
        async with tenant_session(session_factory, "u1") as session:
            session.add(Entity(id="e1", user_id="u1", title="Lost"))
            await session.flush()
            raise RuntimeError("boom")

    assert current_user_id() is None
    assert "tenant_user_id" not in structlog.contextvars.get_contextvars()
    async with session_factory() as session:
        assert (await session.execute(select(Entity))).scalars().all() == []


@pytest.mark.asyncio
async def test_nested_sessions_restore_the_outer_user(session_factory):
    async with tenant_session(session_factory, "outer"):
        with pytest.raises(ValueError):
            async with tenant_session(session_factory, "inner"):
                assert current_user_id() == "inner"
                raise ValueError("inner failed")
        assert current_user_id() == "outer"

    assert current_user_id() is None
