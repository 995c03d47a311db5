from datapod.plugins.manager import Capability, PluginManager, PluginManifest, ToolDefinition

__all__ = ["Capability", "PluginManager", "PluginManifest", "ToolDefinition"]
