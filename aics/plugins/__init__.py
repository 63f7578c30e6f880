"""Plugin system for the AICS editor host.

Imports are lazy to avoid pulling in heavy dependencies (e.g. claude_agent_sdk, aiohttp)
when only lightweight components like parse_manifest or PluginConfigService are needed.
"""

__all__ = [
    "PluginManifest",
    "PluginCapability",
    "PluginPermission",
    "parse_manifest",
    "serialize_manifest",
    "PluginAPI",
    "Plugin",
    "PluginRegistry",
    "PluginInstance",
    "PluginState",
    "PluginContext",
    "PluginDiscovery",
    "ActivationEngine",
    "InstallationManager",
    "PluginManager",
    "PluginConfigService",
    "PluginCatalog",
    "PluginCategory",
    "EditorPlugin",
]


def __getattr__(name):
    if name in (
        "PluginManifest",
        "PluginCapability",
        "PluginPermission",
        "parse_manifest",
        "serialize_manifest",
    ):
        from aics.plugins import manifest
        return getattr(manifest, name)
    if name == "PluginAPI":
        from aics.plugins.api import PluginAPI
        return PluginAPI
    if name in ("Plugin", "PluginRegistry", "PluginInstance", "PluginState", "PluginContext"):
        from aics.plugins import registry
        return getattr(registry, name)
    if name == "PluginDiscovery":
        from aics.plugins.discovery import PluginDiscovery
        return PluginDiscovery
    if name == "ActivationEngine":
        from aics.plugins.lifecycle import ActivationEngine
        return ActivationEngine
    if name == "InstallationManager":
        from aics.plugins.installer import InstallationManager
        return InstallationManager
    if name == "PluginManager":
        from aics.plugins.manager import PluginManager
        return PluginManager
    if name == "PluginConfigService":
        from aics.plugins.config import PluginConfigService
        return PluginConfigService
    if name in ("PluginCatalog", "PluginCategory"):
        from aics.plugins import catalog
        return getattr(catalog, name)
    if name == "EditorPlugin":
        from aics.plugins.base import EditorPlugin
        return EditorPlugin
    raise AttributeError(f"module 'aics.plugins' has no attribute {name!r}")
