"""InMemoryDispatcher: deterministic Dispatcher test double.

Records every message passed to ``send``. With a registry attached it can also
run the matching executors inline (``drain``), which is how tests drive the
requested -> validated -> completed flow without Redis.
"""

from collections import deque

import structlog

from datapod.dispatch.registry import ExecutionContext, ExecutorRegistry
from datapod.dispatch.schemas import DispatchMessage
from datapod.dispatch.step import MemoryStepRunner
from datapod.events.types import parse_event_name

logger = structlog.get_logger(__name__)


class InMemoryDispatcher:
    def __init__(self, registry: ExecutorRegistry | None = None):
        self.registry = registry
        self.sent: list[DispatchMessage] = []
        self.fail_next_send = 0
        self._pending: deque[DispatchMessage] = deque()
        # delivery_id -> recorded steps, shared across redeliveries
        self._steps: dict[str, dict] = {}

    async def send(self, message: DispatchMessage) -> None:
        if self.fail_next_send > 0:
            self.fail_next_send -= 1
            raise ConnectionError("dispatch queue unavailable")
        self.sent.append(message)
        self._pending.append(message)

    async def deliver(self, message: DispatchMessage, fresh_steps: bool = True) -> int:
        """Run every executor subscribed to ``message`` once.

        ``fresh_steps=False`` reuses the step records of an earlier delivery of
        the same message, as a queue retry would. Returns the number of
        executors run. Handler exceptions propagate.
        """
        if self.registry is None:
            raise RuntimeError("InMemoryDispatcher has no executor registry")

        name = parse_event_name(message.name)
        executors = self.registry.match(message.name)
        for spec in executors:
            delivery_id = f"{spec.id}:{message.id}"
            store = {} if fresh_steps else self._steps.setdefault(delivery_id, {})
            ctx = ExecutionContext(event=message, name=name, step=MemoryStepRunner(store))
            await spec.handler(ctx)
        return len(executors)

    async def drain(self, limit: int = 100) -> int:
        """Deliver queued messages (including ones sent while draining) in FIFO order."""
        delivered = 0
        while self._pending and delivered < limit:
            message = self._pending.popleft()
            await self.deliver(message, fresh_steps=False)
            delivered += 1
        return delivered

    # -- test helpers --

    @property
    def names(self) -> list[str]:
        return [m.name for m in self.sent]

    def clear(self) -> None:
        self.sent.clear()
        self._pending.clear()
