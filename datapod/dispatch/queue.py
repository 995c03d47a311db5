"""RedisDispatchQueue: durable fan-out delivery queue on Redis sorted sets.

Every ``send`` creates one delivery per subscribed executor, keyed
``{executor_id}:{event_id}`` so re-sending the same event is idempotent.

Keys:
- ``dispatch:pending``: zset of ready deliveries.
  Score formula: (1000 - boost) * 1e12 + counter. Lower score is served first;
  the counter keeps FIFO order within one priority.
- ``dispatch:delayed``: zset of retries, scored by the unix time they are due.
- ``dispatch:delivery:{id}``: hash with the message JSON, executor id,
  attempts and status.
- ``dispatch:dead_letter``: list of deliveries that failed for good.
"""

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from redis.asyncio import Redis

from datapod.dispatch.registry import ExecutorRegistry
from datapod.dispatch.schemas import PRIORITY_BOOST, DeliveryStatus, DispatchMessage

logger = structlog.get_logger(__name__)


@dataclass
class Delivery:
    delivery_id: str
    executor_id: str
    message: DispatchMessage
    attempts: int
    status: DeliveryStatus


class RedisDispatchQueue:
    PENDING_KEY = "dispatch:pending"
    DELAYED_KEY = "dispatch:delayed"
    COUNTER_KEY = "dispatch:counter"
    DEAD_LETTER_KEY = "dispatch:dead_letter"
    DELIVERY_PREFIX = "dispatch:delivery"

    def __init__(self, redis: Redis, registry: ExecutorRegistry):
        self.redis = redis
        self.registry = registry

    def _delivery_key(self, delivery_id: str) -> str:
        return f"{self.DELIVERY_PREFIX}:{delivery_id}"

    async def send(self, message: DispatchMessage) -> None:
        """Fan ``message`` out to every matching executor."""
        executors = self.registry.match(message.name)
        if not executors:
            logger.warning("dispatch_no_subscribers", event_id=message.id, event_name=message.name)
            return

        for spec in executors:
            delivery_id = f"{spec.id}:{message.id}"
            key = self._delivery_key(delivery_id)

            status = await self.redis.hget(key, "status")
            if status == DeliveryStatus.COMPLETED.value:
                logger.info("dispatch_already_completed", delivery_id=delivery_id)
                continue

            await self.redis.hset(
                key,
                mapping={
                    "message": message.model_dump_json(),
                    "executor_id": spec.id,
                    "status": DeliveryStatus.PENDING.value,
                },
            )
            await self.redis.hsetnx(key, "attempts", 0)
            await self.enqueue(delivery_id, message.priority)

        logger.info(
            "event_dispatched",
            event_id=message.id,
            event_name=message.name,
            executors=[spec.id for spec in executors],
        )

    async def enqueue(self, delivery_id: str, priority: str = "normal") -> float:
        counter = await self.redis.incr(self.COUNTER_KEY)
        boost = PRIORITY_BOOST.get(priority, 0)
        score = (1000 - boost) * 1e12 + counter
        await self.redis.zadd(self.PENDING_KEY, {delivery_id: score})
        return score

    async def dequeue(self) -> str | None:
        """Remove and return the highest priority delivery id, or None if empty."""
        result = await self.redis.zpopmin(self.PENDING_KEY, count=1)
        if not result:
            return None
        delivery_id, _score = result[0]
        return delivery_id

    async def requeue(self, delivery: Delivery) -> None:
        """Put a dequeued delivery back (e.g. its executor is at its concurrency limit)."""
        await self.enqueue(delivery.delivery_id, delivery.message.priority)

    async def load(self, delivery_id: str) -> Delivery | None:
        data = await self.redis.hgetall(self._delivery_key(delivery_id))
        if not data:
            return None
        return Delivery(
            delivery_id=delivery_id,
            executor_id=data["executor_id"],
            message=DispatchMessage.model_validate_json(data["message"]),
            attempts=int(data.get("attempts", 0)),
            status=DeliveryStatus(data.get("status", DeliveryStatus.PENDING.value)),
        )

    async def mark_running(self, delivery_id: str) -> int:
        """Flag the delivery as running and return its attempt number (1-based)."""
        key = self._delivery_key(delivery_id)
        attempt = await self.redis.hincrby(key, "attempts", 1)
        await self.redis.hset(key, "status", DeliveryStatus.RUNNING.value)
        return attempt

    async def mark_completed(self, delivery_id: str) -> None:
        await self.redis.hset(
            self._delivery_key(delivery_id),
            mapping={
                "status": DeliveryStatus.COMPLETED.value,
                "completed_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def schedule_retry(self, delivery_id: str, delay_seconds: float) -> None:
        await self.redis.hset(self._delivery_key(delivery_id), "status", DeliveryStatus.RETRYING.value)
        await self.redis.zadd(self.DELAYED_KEY, {delivery_id: time.time() + delay_seconds})

    async def promote_due(self, now: float | None = None) -> int:
        """Move retries whose delay has elapsed back onto the pending set."""
        now = time.time() if now is None else now
        due = await self.redis.zrangebyscore(self.DELAYED_KEY, "-inf", now)
        promoted = 0
        for delivery_id in due:
            # zrem guards against two workers promoting the same delivery
            if await self.redis.zrem(self.DELAYED_KEY, delivery_id):
                delivery = await self.load(delivery_id)
                priority = delivery.message.priority if delivery else "normal"
                await self.enqueue(delivery_id, priority)
                promoted += 1
        return promoted

    async def mark_failed(self, delivery: Delivery, error: BaseException | str) -> None:
        """Dead-letter a delivery so it stays visible for remediation."""
        reason = error if isinstance(error, str) else f"{type(error).__name__}: {error}"
        await self.redis.hset(
            self._delivery_key(delivery.delivery_id),
            mapping={"status": DeliveryStatus.DEAD.value, "error": reason},
        )
        await self.redis.rpush(
            self.DEAD_LETTER_KEY,
            json.dumps(
                {
                    "delivery_id": delivery.delivery_id,
                    "executor_id": delivery.executor_id,
                    "event_id": delivery.message.id,
                    "event_name": delivery.message.name,
                    "attempts": delivery.attempts,
                    "error": reason,
                    "failed_at": datetime.now(timezone.utc).isoformat(),
                }
            ),
        )

    async def dead_letters(self) -> list[dict]:
        return [json.loads(item) for item in await self.redis.lrange(self.DEAD_LETTER_KEY, 0, -1)]

    async def pending_count(self) -> int:
        return await self.redis.zcard(self.PENDING_KEY)

    async def delayed_count(self) -> int:
        return await self.redis.zcard(self.DELAYED_KEY)
