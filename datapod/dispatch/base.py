"""Dispatcher Protocol: hand a logged event to the executor queue.

Implementations:
- RedisDispatchQueue (queue.py): durable, at-least-once
- InMemoryDispatcher (fake.py): test double
"""

from typing import Protocol, runtime_checkable

from datapod.dispatch.schemas import DispatchMessage


@runtime_checkable
class Dispatcher(Protocol):
    async def send(self, message: DispatchMessage) -> None:
        """Enqueue ``message`` for every executor subscribed to its name.

        Raises on infrastructure failure. Delivery is at-least-once, so
        handlers must tolerate seeing the same message twice.
        """
        ...
