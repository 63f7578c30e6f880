"""Plugin registry - tracks installed plugins and live plugin instances."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, TYPE_CHECKING

from aics.constants import APP_VERSION, HOST_API_VERSION
from aics.plugins.manifest import PluginManifest, load_manifest, resolve_entry_file

if TYPE_CHECKING:
    from aics.plugins.api import PluginAPI

logger = logging.getLogger(__name__)

SOURCE_INSTALLED = "installed"
SOURCE_BUNDLED = "bundled"
SOURCE_EXTERNAL = "external"


@dataclass(frozen=True)
class Plugin:
    """An installed plugin: a validated manifest bound to its bundle directory."""

    manifest: PluginManifest
    bundle_path: Path
    source: str  # "installed" | "bundled" | "external"

    @classmethod
    def from_bundle(cls, bundle_root: Path, source: str) -> "Plugin":
        """Load the bundle's manifest and check that its entry point exists.

        Raises:
            ParseError: If the manifest is invalid or the entry file is missing
        """
        manifest = load_manifest(bundle_root)
        resolve_entry_file(manifest, bundle_root)
        return cls(manifest=manifest, bundle_path=bundle_root.resolve(), source=source)

    @property
    def id(self) -> str:
        return self.manifest.id

    @property
    def entry_file(self) -> Path:
        return resolve_entry_file(self.manifest, self.bundle_path)

    @property
    def entry_callable(self) -> str:
        return self.manifest.entry_callable

    def to_dict(self) -> dict:
        """Serialize plugin to dict for API responses."""
        return {
            "id": self.manifest.id,
            "name": self.manifest.name,
            "version": self.manifest.version,
            "author": self.manifest.author,
            "description": self.manifest.description,
            "capabilities": sorted(c.value for c in self.manifest.capabilities),
            "permissions": sorted(p.value for p in self.manifest.permissions),
            "dependencies": list(self.manifest.dependencies or ()),
            "minimum_app_version": self.manifest.minimum_app_version,
            "source": self.source,
            "path": str(self.bundle_path),
        }


class PluginState(str, Enum):
    """Plugin lifecycle states."""

    INACTIVE = "inactive"
    ACTIVATING = "activating"
    ACTIVE = "active"
    DEACTIVATING = "deactivating"


class RuntimeEnvironment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


@dataclass(frozen=True)
class PluginContext:
    """Host information passed to a plugin's initialize hook."""

    api_version: str = HOST_API_VERSION
    app_version: str = APP_VERSION
    environment: RuntimeEnvironment = RuntimeEnvironment.DEVELOPMENT


@dataclass
class PluginInstance:
    """Runtime state of one activated plugin."""

    plugin: Plugin
    state: PluginState = PluginState.INACTIVE
    plugin_object: Any = field(default=None, repr=False)
    api: Optional[PluginAPI] = field(default=None, repr=False)
    activated_at: Optional[datetime] = None
    module_name: Optional[str] = None

    @property
    def id(self) -> str:
        return self.plugin.id

    @property
    def ui_provider(self) -> Any:
        return self.api.ui_provider if self.api is not None else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "state": self.state.value,
            "activated_at": self.activated_at.isoformat() if self.activated_at else None,
            "commands": sorted(self.api.commands) if self.api is not None else [],
            "has_ui_provider": self.ui_provider is not None,
        }


class _SnapshotRegistry:
    """Copy-on-write mapping: writers swap a new dict in, readers never see a torn state."""

    def __init__(self):
        self._items: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def snapshot(self) -> Mapping[str, Any]:
        """Read-only view of the current contents."""
        return MappingProxyType(self._items)

    def get(self, plugin_id: str):
        return self._items.get(plugin_id)

    def get_all(self) -> list:
        return list(self._items.values())

    def has(self, plugin_id: str) -> bool:
        return plugin_id in self._items

    def count(self) -> int:
        return len(self._items)

    def ids(self) -> list[str]:
        return sorted(self._items)

    def _put(self, plugin_id: str, item: Any) -> None:
        with self._lock:
            items = dict(self._items)
            items[plugin_id] = item
            self._items = items

    def remove(self, plugin_id: str):
        with self._lock:
            if plugin_id not in self._items:
                return None
            items = dict(self._items)
            removed = items.pop(plugin_id)
            self._items = items
            return removed


class PluginRegistry(_SnapshotRegistry):
    """Installed plugin set, keyed by plugin id."""

    def register(self, plugin: Plugin) -> None:
        """Register (or replace) an installed plugin."""
        if self.has(plugin.id):
            logger.info(f"Replacing installed plugin: {plugin.id}")
        self._put(plugin.id, plugin)
        logger.info(f"Registered plugin: {plugin.id} ({plugin.source})")

    def replace_all(self, plugins: Iterable[Plugin]) -> None:
        """Atomically replace the whole installed set."""
        items = {p.id: p for p in plugins}
        with self._lock:
            self._items = items


class InstanceRegistry(_SnapshotRegistry):
    """Live plugin instances, keyed by plugin id."""

    def register(self, instance: PluginInstance) -> None:
        self._put(instance.id, instance)

    def get_active(self) -> list[PluginInstance]:
        return [i for i in self._items.values() if i.state == PluginState.ACTIVE]
