"""Capability-tagged plugin host.

A plugin is any object with a ``manifest`` that names the capabilities it
implements. Registration checks each declared capability against its protocol,
and the host only ever calls a plugin through the capabilities it declared.

Example:
    class AuditPlugin:
        manifest = PluginManifest("audit", "1.0.0", frozenset({Capability.ROUTER}))

        def router(self) -> APIRouter:
            ...

    plugins = PluginManager()
    plugins.register(AuditPlugin())
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

import structlog
from fastapi import APIRouter, FastAPI

from datapod.core.exceptions import ValidationError
from datapod.dispatch.registry import ExecutorRegistry

logger = structlog.get_logger(__name__)


class Capability(StrEnum):
    ROUTER = "router"
    EXECUTOR_PROVIDER = "executor_provider"
    TOOL_PROVIDER = "tool_provider"
    THOUGHT_PROCESSOR = "thought_processor"


@dataclass(frozen=True)
class PluginManifest:
    name: str
    version: str
    capabilities: frozenset[Capability] = field(default_factory=frozenset)
    description: str = ""


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    handler: Callable[[dict[str, Any]], Awaitable[Any]]
    input_schema: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class RouterPlugin(Protocol):
    def router(self) -> APIRouter: ...


@runtime_checkable
class ExecutorProvider(Protocol):
    def register_executors(self, registry: ExecutorRegistry, deps: Any) -> None: ...


@runtime_checkable
class ToolProvider(Protocol):
    def tools(self) -> list[ToolDefinition]: ...


@runtime_checkable
class ThoughtProcessor(Protocol):
    async def process_thought(self, text: str, context: dict[str, Any]) -> dict[str, Any] | None: ...


CAPABILITY_PROTOCOLS: dict[Capability, type] = {
    Capability.ROUTER: RouterPlugin,
    Capability.EXECUTOR_PROVIDER: ExecutorProvider,
    Capability.TOOL_PROVIDER: ToolProvider,
    Capability.THOUGHT_PROCESSOR: ThoughtProcessor,
}


class PluginManager:
    def __init__(self) -> None:
        self._plugins: dict[str, Any] = {}

    def register(self, plugin: Any) -> PluginManifest:
        """Validate and add a plugin.

        Raises:
            ValidationError: missing manifest, duplicate name, or a declared
                capability the plugin does not implement
        """
        manifest = getattr(plugin, "manifest", None)
        if not isinstance(manifest, PluginManifest):
            raise ValidationError(f"Plugin {type(plugin).__name__} has no PluginManifest")
        if manifest.name in self._plugins:
            raise ValidationError(f"Plugin '{manifest.name}' is already registered", {"plugin": manifest.name})

        for capability in manifest.capabilities:
            if not isinstance(plugin, CAPABILITY_PROTOCOLS[capability]):
                raise ValidationError(
                    f"Plugin '{manifest.name}' declares {capability.value} but does not implement it",
                    {"plugin": manifest.name, "capability": capability.value},
                )

        self._plugins[manifest.name] = plugin
        logger.info(
            "plugin_registered",
            plugin=manifest.name,
            version=manifest.version,
            capabilities=sorted(c.value for c in manifest.capabilities),
        )
        return manifest

    def get(self, name: str) -> Any | None:
        return self._plugins.get(name)

    def with_capability(self, capability: Capability) -> list[Any]:
        return [p for p in self._plugins.values() if capability in p.manifest.capabilities]

    def mount_routers(self, app: FastAPI, prefix: str = "/api/plugins") -> int:
        plugins = self.with_capability(Capability.ROUTER)
        for plugin in plugins:
            app.include_router(plugin.router(), prefix=f"{prefix}/{plugin.manifest.name}")
        return len(plugins)

    def register_executors(self, registry: ExecutorRegistry, deps: Any) -> None:
        for plugin in self.with_capability(Capability.EXECUTOR_PROVIDER):
            plugin.register_executors(registry, deps)

    def collect_tools(self) -> dict[str, ToolDefinition]:
        tools: dict[str, ToolDefinition] = {}
        for plugin in self.with_capability(Capability.TOOL_PROVIDER):
            for tool in plugin.tools():
                if tool.name in tools:
                    raise ValidationError(f"Tool '{tool.name}' is provided by more than one plugin", {"tool": tool.name})
                tools[tool.name] = tool
        return tools

    async def process_thought(self, text: str, context: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Offer ``text`` to every thought processor; collect non-empty results."""
        results = []
        for plugin in self.with_capability(Capability.THOUGHT_PROCESSOR):
            result = await plugin.process_thought(text, context or {})
            if result is not None:
                results.append({"plugin": plugin.manifest.name, **result})
        return results

    def __len__(self) -> int:
        return len(self._plugins)
