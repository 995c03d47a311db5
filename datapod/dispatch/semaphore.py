"""Distributed per-executor concurrency limit using Redis."""

from redis.asyncio import Redis


class RedisSemaphore:
    """Distributed semaphore for concurrency control using Redis sets + TTL."""

    def __init__(self, redis: Redis, key: str, max_concurrent: int, ttl: int = 300):
        self.redis = redis
        self.key = key
        self.max_concurrent = max_concurrent
        self.ttl = ttl  # lease timeout, releases the slot of a crashed worker

    @property
    def _slots_key(self) -> str:
        return f"{self.key}:slots"

    def _lease_key(self, holder_id: str) -> str:
        return f"{self.key}:slot:{holder_id}"

    async def acquire(self, holder_id: str) -> bool:
        """Try to acquire a slot. Returns True if acquired, False if at limit."""
        if await self.redis.scard(self._slots_key) >= self.max_concurrent:
            return False

        added = await self.redis.sadd(self._slots_key, holder_id)
        if not added:
            return False
        # Lost a race for the last slot
        if await self.redis.scard(self._slots_key) > self.max_concurrent:
            await self.redis.srem(self._slots_key, holder_id)
            return False
        await self.redis.setex(self._lease_key(holder_id), self.ttl, "1")
        return True

    async def release(self, holder_id: str) -> None:
        await self.redis.srem(self._slots_key, holder_id)
        await self.redis.delete(self._lease_key(holder_id))

    async def heartbeat(self, holder_id: str) -> None:
        """Extend the lease of a long-running delivery."""
        await self.redis.expire(self._lease_key(holder_id), self.ttl)

    async def count(self) -> int:
        return await self.redis.scard(self._slots_key)

    async def cleanup_stale(self) -> int:
        """Remove slots whose lease key has expired. Returns the number removed."""
        cleaned = 0
        for holder_id in await self.redis.smembers(self._slots_key):
            if not await self.redis.exists(self._lease_key(holder_id)):
                await self.redis.srem(self._slots_key, holder_id)
                cleaned += 1
        return cleaned


def executor_semaphore(redis: Redis, executor_id: str, max_concurrent: int, ttl: int = 300) -> RedisSemaphore:
    """Concurrency semaphore shared by every worker running ``executor_id``."""
    return RedisSemaphore(redis, f"concurrency:executor:{executor_id}", max_concurrent, ttl)
