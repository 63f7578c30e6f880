"""Installation manager - discovers, installs and uninstalls plugin bundles."""
from __future__ import annotations

import asyncio
import json
import logging
import shutil
import uuid
import weakref
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from aics.constants import (
    APP_VERSION,
    BUNDLE_SUFFIX,
    DEFAULT_INSTALL_TIMEOUT,
    DEFAULT_NETWORK_TIMEOUT,
    INSTALL_RECORD_FILE,
    STAGING_DIR_NAME,
)
from aics.plugins.bundle import BundleVerifier, fetch_bundle
from aics.plugins.discovery import PluginDiscovery
from aics.plugins.errors import InstallError, NotFoundError, ParseError
from aics.plugins.lifecycle import ActivationEngine
from aics.plugins.manifest import check_compatibility, load_manifest, resolve_entry_file
from aics.plugins.registry import SOURCE_INSTALLED, Plugin, PluginRegistry

logger = logging.getLogger(__name__)


def read_install_record(plugin: Plugin) -> Dict[str, Any]:
    """Return the plugin's .install.json contents, or {} if it has none."""
    record_file = plugin.bundle_path / INSTALL_RECORD_FILE
    try:
        data = json.loads(record_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


class InstallationManager:
    """Owns the installed plugin set and the managed plugins directory."""

    def __init__(
        self,
        registry: PluginRegistry,
        engine: ActivationEngine,
        plugins_dir: Path,
        search_paths: Sequence[Tuple[Path, str]],
        verifier: Optional[BundleVerifier] = None,
        app_version: str = APP_VERSION,
        install_timeout: float = DEFAULT_INSTALL_TIMEOUT,
        network_timeout: float = DEFAULT_NETWORK_TIMEOUT,
    ):
        self.registry = registry
        self.engine = engine
        self.plugins_dir = plugins_dir
        self.discovery = PluginDiscovery(search_paths)
        self.verifier = verifier or BundleVerifier()
        self.app_version = app_version
        self.install_timeout = install_timeout
        self.network_timeout = network_timeout
        # Entries disappear once no install/uninstall holds or awaits them
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        # Lock order: per-id lock, then _set_lock, then the engine's plugin lock
        self._set_lock = asyncio.Lock()

    def _lock_for(self, plugin_id: str) -> asyncio.Lock:
        lock = self._locks.get(plugin_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[plugin_id] = lock
        return lock

    async def discover(self) -> List[Plugin]:
        """Rescan all search paths and replace the installed set.

        Active plugins whose bundles disappeared are deactivated. Installs and
        uninstalls wait for a running rescan, so the set it publishes matches the disk.
        """
        async with self._set_lock:
            plugins = await asyncio.to_thread(self.discovery.discover_all)
            found = {p.id for p in plugins}
            for plugin_id in self.engine.active_ids():
                if plugin_id not in found:
                    logger.warning(f"Plugin '{plugin_id}' vanished from disk, deactivating")
                    await self.engine.deactivate(plugin_id)
            self.registry.replace_all(plugins)
        return plugins

    async def install(self, source: str, upgrade: bool = False) -> Plugin:
        """Install a bundle from a directory, zip archive or URL.

        The installed set changes only if every step succeeds.

        Args:
            source: Local bundle directory, local .zip, or http(s) URL of a zip
            upgrade: Replace an already-installed plugin with the same id

        Raises:
            InstallError: Fetch/extract/manifest/signature failure, id conflict, or timeout
            IncompatibleVersionError: If the host is older than the bundle requires
        """
        staging = self.plugins_dir / STAGING_DIR_NAME / uuid.uuid4().hex
        logger.info(f"Installing plugin from {source}")
        try:
            return await asyncio.wait_for(
                self._install(source, staging, upgrade), self.install_timeout
            )
        except asyncio.TimeoutError as e:
            raise InstallError(
                f"Installation from {source} timed out after {self.install_timeout}s"
            ) from e
        finally:
            await asyncio.to_thread(shutil.rmtree, staging, True)

    async def _install(self, source: str, staging: Path, upgrade: bool) -> Plugin:
        await asyncio.to_thread(staging.mkdir, parents=True, exist_ok=True)
        root = await fetch_bundle(source, staging, self.network_timeout)

        try:
            manifest = await asyncio.to_thread(load_manifest, root)
            resolve_entry_file(manifest, root)
        except ParseError as e:
            raise InstallError(f"Invalid plugin bundle {source}: {e}", e.plugin_id) from e

        check_compatibility(manifest, self.app_version)
        digest = await asyncio.to_thread(self.verifier.verify, root, manifest.id)

        record = {
            "source": source,
            "installed_at": datetime.now(timezone.utc).isoformat(),
            "sha256": digest,
        }
        (root / INSTALL_RECORD_FILE).write_text(json.dumps(record, indent=2), encoding="utf-8")
        dest = self.plugins_dir / f"{manifest.id}{BUNDLE_SUFFIX}"

        async with self._lock_for(manifest.id), self._set_lock:
            existing = self.registry.get(manifest.id)
            if existing is not None:
                if existing.source != SOURCE_INSTALLED:
                    raise InstallError(
                        f"Plugin '{manifest.id}' is a {existing.source} plugin and cannot be replaced",
                        manifest.id,
                    )
                if not upgrade:
                    raise InstallError(
                        f"Plugin '{manifest.id}' is already installed (use upgrade)", manifest.id
                    )

            async with self.engine.plugin_lock(manifest.id):
                if existing is not None:
                    await self.engine.deactivate_locked(manifest.id)
                # Renames stay inside plugins_dir, so no await between them and registration
                plugin = self._swap_into_place(root, dest, staging, existing)
                self.registry.register(plugin)

        logger.info(f"Installed plugin '{plugin.id}' {plugin.manifest.version} to {dest}")
        return plugin

    def _swap_into_place(
        self, root: Path, dest: Path, staging: Path, existing: Optional[Plugin]
    ) -> Plugin:
        """Move the staged bundle to ``dest``, parking any replaced bundle in staging."""
        parked: List[Tuple[Path, Path]] = []
        # The old bundle may live under another directory name than dest
        if existing is not None and existing.bundle_path.exists():
            parked.append((existing.bundle_path, staging / "previous"))
        if dest.exists() and (existing is None or existing.bundle_path != dest.resolve()):
            logger.warning(f"Replacing unregistered bundle directory {dest}")
            parked.append((dest, staging / "unregistered"))

        moved: List[Tuple[Path, Path]] = []
        try:
            for src, target in parked:
                src.rename(target)
                moved.append((src, target))
            root.rename(dest)
        except OSError as e:
            for src, target in reversed(moved):
                target.rename(src)
            raise InstallError(f"Failed to move bundle into {dest}: {e}") from e
        return Plugin.from_bundle(dest, SOURCE_INSTALLED)

    async def uninstall(self, plugin_id: str) -> None:
        """Deactivate, unregister and delete an installed plugin.

        Raises:
            NotFoundError: If the plugin is not installed
            InstallError: If the plugin is bundled/external, or its directory cannot be removed
        """
        async with self._lock_for(plugin_id), self._set_lock:
            plugin = self.registry.get(plugin_id)
            if plugin is None:
                raise NotFoundError(f"Plugin '{plugin_id}' is not installed", plugin_id)
            if plugin.source != SOURCE_INSTALLED:
                raise InstallError(
                    f"Plugin '{plugin_id}' is a {plugin.source} plugin and cannot be uninstalled",
                    plugin_id,
                )

            async with self.engine.plugin_lock(plugin_id):
                await self.engine.deactivate_locked(plugin_id)
                self.registry.remove(plugin_id)

            try:
                await asyncio.to_thread(shutil.rmtree, plugin.bundle_path)
            except OSError as e:
                raise InstallError(f"Failed to remove {plugin.bundle_path}: {e}", plugin_id) from e

        logger.info(f"Uninstalled plugin: {plugin_id}")
