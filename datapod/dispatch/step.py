"""Durable step memoization.

Each delivery keeps a Redis hash of ``label -> JSON result``. When a delivery
is retried, completed steps return their recorded result instead of running
again, so a handler that failed after its write step does not write twice.
Step results must be JSON-serializable.
"""

import inspect
import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


class RedisStepRunner:
    KEY_PREFIX = "dispatch:steps"

    def __init__(self, redis: Redis, delivery_id: str):
        self.redis = redis
        self.delivery_id = delivery_id
        self.key = f"{self.KEY_PREFIX}:{delivery_id}"

    async def run(self, label: str, fn: Callable[[], Awaitable[Any] | Any]) -> Any:
        recorded = await self.redis.hget(self.key, label)
        if recorded is not None:
            logger.debug("step_replayed", delivery_id=self.delivery_id, step=label)
            return json.loads(recorded)["result"]

        result = fn()
        if inspect.isawaitable(result):
            result = await result

        await self.redis.hset(self.key, label, json.dumps({"result": result}, default=str))
        return result

    async def completed_steps(self) -> list[str]:
        return list(await self.redis.hkeys(self.key))

    async def expire(self, ttl_seconds: int) -> None:
        await self.redis.expire(self.key, ttl_seconds)


class MemoryStepRunner:
    """Process-local step runner (tests and inline dispatch)."""

    def __init__(self, store: dict[str, Any] | None = None):
        self.store: dict[str, Any] = {} if store is None else store
        self.executed: list[str] = []

    async def run(self, label: str, fn: Callable[[], Awaitable[Any] | Any]) -> Any:
        if label in self.store:
            return self.store[label]
        result = fn()
        if inspect.isawaitable(result):
            result = await result
        self.store[label] = result
        self.executed.append(label)
        return result
