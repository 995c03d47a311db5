"""Executor registration.

An executor is an async handler subscribed to one or more event-name globs
(``entities.*.validated``, ``*.*.requested``). The queue fans every message
out to each matching executor as a separate delivery.

Example:
    registry = ExecutorRegistry()

    @registry.register("entities", ["entities.*.validated"], concurrency=20)
    async def handle_entities(ctx: ExecutionContext) -> None:
        ...
"""

import fnmatch
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from datapod.core.exceptions import ValidationError
from datapod.dispatch.schemas import DispatchMessage
from datapod.events.types import EventName


class StepRunner(Protocol):
    async def run(self, label: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``fn`` once per delivery; later attempts return the recorded result."""
        ...


@dataclass
class ExecutionContext:
    event: DispatchMessage
    name: EventName
    step: StepRunner
    attempt: int = 1


Handler = Callable[[ExecutionContext], Awaitable[Any]]


@dataclass
class ExecutorSpec:
    id: str
    patterns: tuple[str, ...]
    handler: Handler
    concurrency: int = 10
    max_attempts: int | None = None  # None: use settings.dispatch_max_attempts

    def matches(self, event_name: str) -> bool:
        return any(fnmatch.fnmatchcase(event_name, pattern) for pattern in self.patterns)


@dataclass
class ExecutorRegistry:
    _executors: dict[str, ExecutorSpec] = field(default_factory=dict)

    def register(
        self,
        executor_id: str,
        patterns: list[str] | tuple[str, ...],
        concurrency: int = 10,
        max_attempts: int | None = None,
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add(ExecutorSpec(executor_id, tuple(patterns), handler, concurrency, max_attempts))
            return handler

        return decorator

    def add(self, spec: ExecutorSpec) -> None:
        if spec.id in self._executors:
            raise ValidationError(f"Executor '{spec.id}' is already registered", {"executor_id": spec.id})
        if not spec.patterns:
            raise ValidationError(f"Executor '{spec.id}' has no subscriptions", {"executor_id": spec.id})
        self._executors[spec.id] = spec

    def get(self, executor_id: str) -> ExecutorSpec | None:
        return self._executors.get(executor_id)

    def match(self, event_name: str) -> list[ExecutorSpec]:
        return [spec for spec in self._executors.values() if spec.matches(event_name)]

    def __iter__(self):
        return iter(self._executors.values())

    def __len__(self) -> int:
        return len(self._executors)

    def __contains__(self, executor_id: str) -> bool:
        return executor_id in self._executors
