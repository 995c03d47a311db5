"""Tests for executor registration and glob matching."""

import pytest

from datapod.core.exceptions import ValidationError
from datapod.dispatch.registry import ExecutorRegistry, ExecutorSpec

pytestmark = pytest.mark.unit


async def noop(ctx):
    return None


def test_match_uses_globs():
    registry = ExecutorRegistry()
    registry.register("validator", ["*.*.requested"])(noop)
    registry.register("entities", ["entities.*.validated"])(noop)

    assert [s.id for s in registry.match("entities.create.requested")] == ["validator"]
    assert [s.id for s in registry.match("entities.delete.validated")] == ["entities"]
    assert registry.match("projects.create.validated") == []
    assert registry.match("entities.create.completed") == []


def test_one_spec_can_subscribe_to_several_patterns():
    registry = ExecutorRegistry()
    registry.register("audit", ["entities.*.completed", "projects.*.completed"])(noop)

    assert len(registry.match("projects.update.completed")) == 1
    assert "audit" in registry


def test_duplicate_executor_id_is_rejected():
    registry = ExecutorRegistry()
    registry.register("entities", ["entities.*.validated"])(noop)

    with pytest.raises(ValidationError):
        registry.register("entities", ["entities.create.validated"])(noop)


def test_executor_without_patterns_is_rejected():
    with pytest.raises(ValidationError):
        ExecutorRegistry().add(ExecutorSpec("empty", (), noop))


def test_register_keeps_limits():
    registry = ExecutorRegistry()
    registry.register("slow", ["x.*.validated"], concurrency=2, max_attempts=7)(noop)

    spec = registry.get("slow")
    assert spec.concurrency == 2
    assert spec.max_attempts == 7
    assert len(registry) == 1
