"""Dispatch worker: pulls deliveries, enforces executor concurrency, runs handlers.

Failure classification:
- permanent (a non-retryable DataPodError such as NotFoundError,
  ForbiddenError, UnknownActionError): dead-lettered immediately, logged at
  error, never retried
- transient (anything else): retried with exponential backoff until the
  executor's max_attempts, then dead-lettered
"""

import asyncio

import structlog
from redis.asyncio import Redis

from datapod.core.config import Settings, get_settings
from datapod.core.exceptions import is_retryable
from datapod.dispatch.queue import RedisDispatchQueue
from datapod.dispatch.registry import ExecutionContext, ExecutorRegistry
from datapod.dispatch.schemas import DeliveryStatus
from datapod.dispatch.semaphore import executor_semaphore
from datapod.dispatch.step import RedisStepRunner
from datapod.events.types import parse_event_name

logger = structlog.get_logger(__name__)

# Completed deliveries keep their step records this long (redelivery window)
STEP_RETENTION_SECONDS = 24 * 3600


def retry_delay(attempt: int, base: float, maximum: float) -> float:
    """Backoff before retry number ``attempt`` (1-based)."""
    return min(maximum, base * 2 ** (attempt - 1))


async def process_next_delivery(
    queue: RedisDispatchQueue,
    registry: ExecutorRegistry,
    redis: Redis,
    settings: Settings | None = None,
) -> bool:
    """Pull the next delivery and run it.

    Returns True if a delivery was handled (successfully or not), False if the
    queue was empty or the delivery had to wait for a concurrency slot.
    """
    settings = settings or get_settings()

    await queue.promote_due()
    delivery_id = await queue.dequeue()
    if delivery_id is None:
        return False

    delivery = await queue.load(delivery_id)
    if delivery is None:
        logger.error("delivery_metadata_missing", delivery_id=delivery_id)
        return False
    if delivery.status == DeliveryStatus.COMPLETED:
        logger.info("delivery_already_completed", delivery_id=delivery_id)
        return True

    spec = registry.get(delivery.executor_id)
    if spec is None:
        logger.error("delivery_executor_missing", delivery_id=delivery_id, executor_id=delivery.executor_id)
        await queue.mark_failed(delivery, f"Executor '{delivery.executor_id}' is not registered")
        return True

    semaphore = executor_semaphore(redis, spec.id, spec.concurrency, settings.dispatch_lease_ttl_seconds)
    if not await semaphore.acquire(delivery_id):
        await queue.requeue(delivery)
        logger.info("delivery_concurrency_limit_reenqueued", delivery_id=delivery_id, executor_id=spec.id)
        return False

    message = delivery.message
    structlog.contextvars.bind_contextvars(
        delivery_id=delivery_id,
        event_id=message.id,
        correlation_id=message.correlation_id,
    )
    max_attempts = spec.max_attempts or settings.dispatch_max_attempts
    step = RedisStepRunner(redis, delivery_id)

    try:
        attempt = await queue.mark_running(delivery_id)
        delivery.attempts = attempt
        try:
            ctx = ExecutionContext(
                event=message,
                name=parse_event_name(message.name),
                step=step,
                attempt=attempt,
            )
            await spec.handler(ctx)
        except Exception as exc:
            if not is_retryable(exc):
                logger.error(
                    "executor_permanent_failure",
                    executor_id=spec.id,
                    event_name=message.name,
                    attempt=attempt,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                await queue.mark_failed(delivery, exc)
            elif attempt >= max_attempts:
                logger.error(
                    "executor_retries_exhausted",
                    executor_id=spec.id,
                    event_name=message.name,
                    attempts=attempt,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )
                await queue.mark_failed(delivery, exc)
            else:
                delay = retry_delay(attempt, settings.dispatch_backoff_seconds, settings.dispatch_max_backoff_seconds)
                logger.warning(
                    "executor_retry_scheduled",
                    executor_id=spec.id,
                    event_name=message.name,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                await queue.schedule_retry(delivery_id, delay)
        else:
            await queue.mark_completed(delivery_id)
            await step.expire(STEP_RETENTION_SECONDS)
            logger.info("delivery_completed", executor_id=spec.id, event_name=message.name, attempt=attempt)
    finally:
        await semaphore.release(delivery_id)
        structlog.contextvars.unbind_contextvars("delivery_id", "event_id", "correlation_id")

    return True


async def run_worker(
    queue: RedisDispatchQueue,
    registry: ExecutorRegistry,
    redis: Redis,
    stop: asyncio.Event,
    settings: Settings | None = None,
) -> None:
    """Process deliveries until ``stop`` is set."""
    settings = settings or get_settings()
    logger.info("dispatch_worker_started", executors=[spec.id for spec in registry])

    while not stop.is_set():
        if await process_next_delivery(queue, registry, redis, settings):
            continue

        for spec in registry:
            cleaned = await executor_semaphore(
                redis, spec.id, spec.concurrency, settings.dispatch_lease_ttl_seconds
            ).cleanup_stale()
            if cleaned:
                logger.warning("executor_stale_slots_released", executor_id=spec.id, count=cleaned)

        try:
            await asyncio.wait_for(stop.wait(), timeout=settings.worker_poll_interval_seconds)
        except asyncio.TimeoutError:
            pass

    logger.info("dispatch_worker_stopped")
