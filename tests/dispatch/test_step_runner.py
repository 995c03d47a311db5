"""Tests for step memoization."""

import pytest

from datapod.dispatch.step import MemoryStepRunner, RedisStepRunner

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_redis_step_result_is_replayed(redis_client):
    """A second run of the same label returns the recorded result without calling fn."""
    calls = []

    async def write():
        calls.append(1)
        return {"id": "e1"}

    first = await RedisStepRunner(redis_client, "entities:ev1").run("create-entity", write)
    second = await RedisStepRunner(redis_client, "entities:ev1").run("create-entity", write)

    assert first == second == {"id": "e1"}
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_redis_steps_are_scoped_to_delivery(redis_client):
    await RedisStepRunner(redis_client, "a:ev1").run("step", lambda: 1)

    result = await RedisStepRunner(redis_client, "b:ev1").run("step", lambda: 2)

    assert result == 2


@pytest.mark.asyncio
async def test_failed_step_is_not_recorded(redis_client):
    runner = RedisStepRunner(redis_client, "a:ev1")

    async def boom():
        raise ConnectionError("db down")

    with pytest.raises(ConnectionError):
        await runner.run("write", boom)

    assert await runner.completed_steps() == []
    assert await runner.run("write", lambda: "ok") == "ok"


@pytest.mark.asyncio
async def test_none_result_is_recorded(redis_client):
    runner = RedisStepRunner(redis_client, "a:ev1")
    calls = []

    async def side_effect():
        calls.append(1)

    await runner.run("notify", side_effect)
    await runner.run("notify", side_effect)

    assert calls == [1]


@pytest.mark.asyncio
async def test_memory_step_runner_shares_store():
    store = {}
    await MemoryStepRunner(store).run("a", lambda: 1)

    runner = MemoryStepRunner(store)
    assert await runner.run("a", lambda: 2) == 1
    assert runner.executed == []
