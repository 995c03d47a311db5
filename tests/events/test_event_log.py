"""Tests for the append-only event log (in-memory and SQL implementations)."""

import pytest

from datapod.core.exceptions import ConflictError
from datapod.events.envelope import create_event

pytestmark = pytest.mark.unit


@pytest.fixture(params=["memory", "sql"])
def log(request):
    """Both EventLog implementations must honour the same contract."""
    return request.getfixturevalue("memory_log" if request.param == "memory" else "sql_log")


def _event(subject_id="e1", event_type="entities.create.requested", correlation_id=None, event_id=None):
    return create_event(
        type=event_type,
        subject_id=subject_id,
        subject_type="entity",
        data={"title": "Test"},
        user_id="u1",
        correlation_id=correlation_id,
        event_id=event_id,
    )


@pytest.mark.asyncio
async def test_append_then_find_by_id(log):
    event = _event()

    stored = await log.append(event)
    found = await log.find_by_id(event.id)

    assert stored.id == event.id
    assert found.type == event.type
    assert found.data == event.data
    assert found.user_id == "u1"


@pytest.mark.asyncio
async def test_find_by_id_unknown_returns_none(log):
    assert await log.find_by_id("missing") is None


@pytest.mark.asyncio
async def test_reappending_same_record_returns_stored_unchanged(log):
    """Re-appending an id is treated as the same immutable record."""
    original = _event()
    await log.append(original)

    retry = original.model_copy(update={"data": {"title": "Rewritten"}})
    stored = await log.append(retry)

    assert stored.data == {"title": "Test"}
    found = await log.find_by_id(original.id)
    assert found.data == {"title": "Test"}
    assert found.timestamp.replace(tzinfo=None) == original.timestamp.replace(tzinfo=None)
    assert len(await log.find_by_subject("e1")) == 1


@pytest.mark.asyncio
async def test_reusing_an_id_for_a_different_event_is_rejected(log):
    original = _event()
    await log.append(original)

    with pytest.raises(ConflictError):
        await log.append(_event(subject_id="e2", event_id=original.id))

    found = await log.find_by_id(original.id)
    assert found.subject_id == "e1"


@pytest.mark.asyncio
async def test_find_by_subject_and_correlation(log):
    await log.append(_event("e1", correlation_id="c1"))
    await log.append(_event("e1", "entities.create.validated", correlation_id="c1"))
    await log.append(_event("e2", correlation_id="c2"))

    by_subject = await log.find_by_subject("e1")
    by_correlation = await log.find_by_correlation("c1")

    assert {e.type for e in by_subject} == {"entities.create.requested", "entities.create.validated"}
    assert {e.subject_id for e in by_correlation} == {"e1"}
    assert await log.find_by_correlation("nope") == []


@pytest.mark.asyncio
async def test_sql_log_count(sql_log):
    assert await sql_log.count() == 0
    await sql_log.append(_event())
    await sql_log.append(_event("e2"))
    assert await sql_log.count() == 2


@pytest.mark.asyncio
async def test_memory_log_simulated_outage(memory_log):
    memory_log.fail_next_append = 1

    with pytest.raises(ConnectionError):
        await memory_log.append(_event())
    await memory_log.append(_event())

    assert len(memory_log) == 1
