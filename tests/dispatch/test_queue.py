"""Tests for RedisDispatchQueue: fan-out, priority and retries."""

import time

import pytest

from datapod.dispatch.queue import RedisDispatchQueue
from datapod.dispatch.registry import ExecutorRegistry
from datapod.dispatch.schemas import DeliveryStatus, DispatchMessage, DispatchUser

pytestmark = pytest.mark.unit


async def noop(ctx):
    return None


def message(event_id="ev1", name="entities.create.requested", priority=None):
    return DispatchMessage(
        id=event_id,
        name=name,
        data={"title": "Test"},
        user=DispatchUser(id="u1"),
        subject_id="e1",
        subject_type="entity",
        metadata={"priority": priority} if priority else {},
    )


@pytest.fixture
def registry():
    registry = ExecutorRegistry()
    registry.register("validator", ["*.*.requested"])(noop)
    registry.register("audit", ["entities.*.*"])(noop)
    registry.register("entities", ["entities.*.validated"])(noop)
    return registry


@pytest.fixture
def queue(redis_client, registry):
    return RedisDispatchQueue(redis_client, registry)


@pytest.mark.asyncio
async def test_send_fans_out_one_delivery_per_executor(queue):
    await queue.send(message())

    assert await queue.pending_count() == 2
    validator = await queue.load("validator:ev1")
    assert validator.executor_id == "validator"
    assert validator.status == DeliveryStatus.PENDING
    assert validator.message.data == {"title": "Test"}
    assert await queue.load("entities:ev1") is None


@pytest.mark.asyncio
async def test_send_without_subscribers_enqueues_nothing(queue):
    await queue.send(message(name="templates.create.validated"))

    assert await queue.pending_count() == 0


@pytest.mark.asyncio
async def test_resend_is_idempotent(queue):
    """Sending the same event twice leaves one delivery per executor."""
    await queue.send(message())
    await queue.send(message())

    assert await queue.pending_count() == 2


@pytest.mark.asyncio
async def test_resend_skips_completed_deliveries(queue):
    await queue.send(message())
    await queue.mark_completed("validator:ev1")
    await queue.dequeue()
    await queue.dequeue()

    await queue.send(message())

    assert await queue.dequeue() == "audit:ev1"
    assert await queue.dequeue() is None


@pytest.mark.asyncio
async def test_priority_is_served_before_fifo(redis_client):
    registry = ExecutorRegistry()
    registry.register("entities", ["entities.*.validated"])(noop)
    queue = RedisDispatchQueue(redis_client, registry)

    await queue.send(message("low", "entities.create.validated", "low"))
    await queue.send(message("n1", "entities.create.validated"))
    await queue.send(message("crit", "entities.create.validated", "critical"))
    await queue.send(message("n2", "entities.create.validated"))

    order = [await queue.dequeue() for _ in range(4)]
    assert order == ["entities:crit", "entities:n1", "entities:n2", "entities:low"]


@pytest.mark.asyncio
async def test_mark_running_counts_attempts(queue):
    await queue.send(message())

    assert await queue.mark_running("validator:ev1") == 1
    assert await queue.mark_running("validator:ev1") == 2
    assert (await queue.load("validator:ev1")).status == DeliveryStatus.RUNNING


@pytest.mark.asyncio
async def test_retry_is_promoted_when_due(queue):
    await queue.send(message())
    await queue.dequeue()
    await queue.dequeue()

    await queue.schedule_retry("validator:ev1", 60)
    assert await queue.promote_due() == 0
    assert await queue.delayed_count() == 1

    assert await queue.promote_due(now=time.time() + 61) == 1
    assert await queue.dequeue() == "validator:ev1"
    assert await queue.delayed_count() == 0


@pytest.mark.asyncio
async def test_mark_failed_dead_letters(queue):
    await queue.send(message())
    delivery = await queue.load("validator:ev1")

    await queue.mark_failed(delivery, ConnectionError("db down"))

    assert (await queue.load("validator:ev1")).status == DeliveryStatus.DEAD
    [letter] = await queue.dead_letters()
    assert letter["delivery_id"] == "validator:ev1"
    assert letter["event_name"] == "entities.create.requested"
    assert letter["error"] == "ConnectionError: db down"
