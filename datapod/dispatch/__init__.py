"""Asynchronous dispatch: queue, executor registry, step memoization, worker."""

from datapod.dispatch.base import Dispatcher
from datapod.dispatch.registry import ExecutionContext, ExecutorRegistry, ExecutorSpec
from datapod.dispatch.schemas import DispatchMessage, DispatchUser

__all__ = [
    "DispatchMessage",
    "DispatchUser",
    "Dispatcher",
    "ExecutionContext",
    "ExecutorRegistry",
    "ExecutorSpec",
]
