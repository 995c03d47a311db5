"""Tests for capability-tagged plugin registration."""

import pytest
from fastapi import APIRouter, FastAPI

from datapod.core.exceptions import ValidationError
from datapod.dispatch.registry import ExecutorRegistry
from datapod.main import create_app
from datapod.plugins.manager import Capability, PluginManager, PluginManifest, ToolDefinition

pytestmark = pytest.mark.unit


class RouterOnly:
    manifest = PluginManifest("notes-export", "1.0.0", frozenset({Capability.ROUTER}))

    def router(self) -> APIRouter:
        router = APIRouter()

        @router.get("/ping")
        async def ping():
            return {"ok": True}

        return router


class AuditExecutors:
    manifest = PluginManifest("audit", "0.2.0", frozenset({Capability.EXECUTOR_PROVIDER}))

    def register_executors(self, registry, deps):
        @registry.register("audit", ["entities.*.completed"])
        async def handle(ctx):
            return None


class Summarizer:
    manifest = PluginManifest(
        "summarizer", "1.0.0", frozenset({Capability.TOOL_PROVIDER, Capability.THOUGHT_PROCESSOR})
    )

    def tools(self):
        async def summarize(args):
            return args["text"][:10]

        return [ToolDefinition("summarize", "Shorten text", summarize)]

    async def process_thought(self, text, context):
        if "todo" not in text:
            return None
        return {"suggestion": "create task"}


class Liar:
    manifest = PluginManifest("liar", "1.0.0", frozenset({Capability.ROUTER}))


def test_register_validates_declared_capabilities():
    manager = PluginManager()

    with pytest.raises(ValidationError):
        manager.register(Liar())
    with pytest.raises(ValidationError):
        manager.register(object())

    assert len(manager) == 0


def test_duplicate_plugin_name_is_rejected():
    manager = PluginManager()
    manager.register(RouterOnly())

    with pytest.raises(ValidationError):
        manager.register(RouterOnly())


def test_mount_routers_uses_plugin_prefix():
    manager = PluginManager()
    manager.register(RouterOnly())
    manager.register(AuditExecutors())
    app = FastAPI()

    mounted = manager.mount_routers(app)

    assert mounted == 1
    assert "/api/plugins/notes-export/ping" in {route.path for route in app.routes}


def test_register_executors_only_calls_providers():
    manager = PluginManager()
    manager.register(RouterOnly())
    manager.register(AuditExecutors())
    registry = ExecutorRegistry()

    manager.register_executors(registry, deps=None)

    assert [spec.id for spec in registry.match("entities.create.completed")] == ["audit"]


@pytest.mark.asyncio
async def test_tools_and_thoughts():
    manager = PluginManager()
    manager.register(Summarizer())

    tools = manager.collect_tools()
    assert await tools["summarize"].handler({"text": "a long piece of text"}) == "a long pie"

    assert await manager.process_thought("nothing here") == []
    assert await manager.process_thought("todo: call bank") == [{"plugin": "summarizer", "suggestion": "create task"}]


def test_plugin_executors_join_the_container(container):
    create_app(container=container, plugins=[AuditExecutors()])

    assert "audit" in container.registry
    assert container.plugins.get("audit") is not None
