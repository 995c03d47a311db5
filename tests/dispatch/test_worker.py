"""Tests for the dispatch worker: completion, retries and dead letters."""

import asyncio

import pytest

from datapod.core.exceptions import NotFoundError
from datapod.dispatch.queue import RedisDispatchQueue
from datapod.dispatch.registry import ExecutorRegistry
from datapod.dispatch.schemas import DeliveryStatus, DispatchMessage, DispatchUser
from datapod.dispatch.semaphore import executor_semaphore
from datapod.dispatch.worker import process_next_delivery, retry_delay, run_worker

pytestmark = pytest.mark.unit


def message(event_id="ev1"):
    return DispatchMessage(
        id=event_id,
        name="entities.create.validated",
        data={"title": "Test"},
        user=DispatchUser(id="u1"),
        subject_id="e1",
        subject_type="entity",
        correlation_id="corr-1",
    )


@pytest.fixture
def registry():
    return ExecutorRegistry()


@pytest.fixture
def queue(redis_client, registry):
    return RedisDispatchQueue(redis_client, registry)


async def run_until_idle(queue, registry, redis_client, settings, limit=10):
    handled = 0
    for _ in range(limit):
        if not await process_next_delivery(queue, registry, redis_client, settings):
            break
        handled += 1
    return handled


@pytest.mark.asyncio
async def test_successful_delivery_is_completed(queue, registry, redis_client, settings):
    seen = []

    @registry.register("entities", ["entities.*.validated"])
    async def handle(ctx):
        seen.append((ctx.name.action, ctx.event.user_id, ctx.attempt))

    await queue.send(message())
    handled = await process_next_delivery(queue, registry, redis_client, settings)

    assert handled is True
    assert seen == [("create", "u1", 1)]
    assert (await queue.load("entities:ev1")).status == DeliveryStatus.COMPLETED
    assert await queue.dead_letters() == []


@pytest.mark.asyncio
async def test_empty_queue_returns_false(queue, registry, redis_client, settings):
    assert await process_next_delivery(queue, registry, redis_client, settings) is False


@pytest.mark.asyncio
async def test_permanent_failure_is_dead_lettered_without_retry(queue, registry, redis_client, settings):
    """A non-retryable error (NotFoundError) is never retried."""
    calls = []

    @registry.register("entities", ["entities.*.validated"])
    async def handle(ctx):
        calls.append(ctx.attempt)
        raise NotFoundError("Entity", ctx.event.subject_id)

    await queue.send(message())
    await run_until_idle(queue, registry, redis_client, settings)

    assert calls == [1]
    assert await queue.delayed_count() == 0
    [letter] = await queue.dead_letters()
    assert letter["delivery_id"] == "entities:ev1"
    assert letter["error"].startswith("NotFoundError")


@pytest.mark.asyncio
async def test_transient_failure_retries_until_exhausted(queue, registry, redis_client, settings):
    calls = []

    @registry.register("entities", ["entities.*.validated"])
    async def handle(ctx):
        calls.append(ctx.attempt)
        raise ConnectionError("db down")

    await queue.send(message())
    await run_until_idle(queue, registry, redis_client, settings)

    assert calls == [1, 2, 3]
    [letter] = await queue.dead_letters()
    assert letter["attempts"] == 3
    assert (await queue.load("entities:ev1")).status == DeliveryStatus.DEAD


@pytest.mark.asyncio
async def test_executor_max_attempts_overrides_settings(queue, registry, redis_client, settings):
    calls = []

    @registry.register("entities", ["entities.*.validated"], max_attempts=1)
    async def handle(ctx):
        calls.append(ctx.attempt)
        raise ConnectionError("db down")

    await queue.send(message())
    await run_until_idle(queue, registry, redis_client, settings)

    assert calls == [1]
    assert len(await queue.dead_letters()) == 1


@pytest.mark.asyncio
async def test_completed_steps_are_not_repeated_on_retry(queue, registry, redis_client, settings):
    """The write step ran on attempt 1; attempt 2 reuses its result."""
    writes = []

    @registry.register("entities", ["entities.*.validated"])
    async def handle(ctx):
        async def write():
            writes.append(ctx.attempt)
            return {"id": "e1"}

        row = await ctx.step.run("create-entity", write)
        if ctx.attempt == 1:
            raise ConnectionError("log append failed")
        return row

    await queue.send(message())
    await run_until_idle(queue, registry, redis_client, settings)

    assert writes == [1]
    assert (await queue.load("entities:ev1")).status == DeliveryStatus.COMPLETED


@pytest.mark.asyncio
async def test_delivery_waits_for_concurrency_slot(queue, registry, redis_client, settings):
    calls = []

    @registry.register("entities", ["entities.*.validated"], concurrency=1)
    async def handle(ctx):
        calls.append(ctx.event.id)

    semaphore = executor_semaphore(redis_client, "entities", 1)
    await semaphore.acquire("other-delivery")
    await queue.send(message())

    assert await process_next_delivery(queue, registry, redis_client, settings) is False
    assert calls == []
    assert await queue.pending_count() == 1

    await semaphore.release("other-delivery")
    assert await process_next_delivery(queue, registry, redis_client, settings) is True
    assert calls == ["ev1"]
    assert await semaphore.count() == 0


@pytest.mark.asyncio
async def test_unregistered_executor_is_dead_lettered(queue, registry, redis_client, settings):
    @registry.register("entities", ["entities.*.validated"])
    async def handle(ctx):
        return None

    await queue.send(message())
    other = RedisDispatchQueue(redis_client, ExecutorRegistry())

    await process_next_delivery(other, ExecutorRegistry(), redis_client, settings)

    [letter] = await queue.dead_letters()
    assert "not registered" in letter["error"]


def test_retry_delay_is_capped():
    assert retry_delay(1, 2.0, 60.0) == 2.0
    assert retry_delay(3, 2.0, 60.0) == 8.0
    assert retry_delay(10, 2.0, 60.0) == 60.0


@pytest.mark.asyncio
async def test_run_worker_stops_when_signalled(queue, registry, redis_client, settings):
    done = asyncio.Event()
    stop = asyncio.Event()

    @registry.register("entities", ["entities.*.validated"])
    async def handle(ctx):
        done.set()

    await queue.send(message())
    task = asyncio.create_task(run_worker(queue, registry, redis_client, stop, settings))
    await asyncio.wait_for(done.wait(), timeout=5)
    stop.set()
    await asyncio.wait_for(task, timeout=5)

    assert (await queue.load("entities:ev1")).status == DeliveryStatus.COMPLETED
