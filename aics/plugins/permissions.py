"""Permission table for Host API operations."""

from typing import Dict, FrozenSet

from aics.plugins.manifest import PluginManifest, PluginPermission

P = PluginPermission

REQUIRED_PERMISSIONS: Dict[str, FrozenSet[PluginPermission]] = {
    "workspace.read_file": frozenset({P.FILE_READ}),
    "workspace.write_file": frozenset({P.FILE_WRITE}),
    "terminal.execute": frozenset({P.TERMINAL, P.PROCESS}),
    "network.request": frozenset({P.NETWORK}),
    "clipboard.read": frozenset({P.CLIPBOARD}),
    "clipboard.write": frozenset({P.CLIPBOARD}),
    "ui.notify": frozenset({P.NOTIFICATIONS}),
    "ai.complete": frozenset({P.NETWORK}),
    "editor.open_file": frozenset({P.FILE_READ}),
    "editor.get_active": frozenset({P.FILE_READ}),
    "editor.set_cursor": frozenset({P.FILE_READ}),
    "editor.set_text": frozenset({P.FILE_WRITE}),
    "editor.insert_text": frozenset({P.FILE_WRITE}),
}


def required_permissions(op: str) -> FrozenSet[PluginPermission]:
    """Permissions a plugin must declare to perform ``op``."""
    try:
        return REQUIRED_PERMISSIONS[op]
    except KeyError:
        raise ValueError(f"Unknown Host API operation: {op}")


def missing_permissions(manifest: PluginManifest, op: str) -> FrozenSet[PluginPermission]:
    return required_permissions(op) - manifest.permissions
