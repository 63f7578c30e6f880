"""Plugin manager - top-level orchestrator for the plugin system."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from aics.plugins.bundle import BundleVerifier
from aics.plugins.catalog import PluginCatalog, PluginCategory
from aics.plugins.config import PluginConfigService
from aics.plugins.errors import InstallError, NotFoundError, PluginError
from aics.plugins.installer import InstallationManager, read_install_record
from aics.plugins.lifecycle import ActivationEngine
from aics.plugins.registry import Plugin, PluginInstance, PluginRegistry, PluginState

if TYPE_CHECKING:
    from aics.config import HostSettings
    from aics.services.host import HostServices

logger = logging.getLogger(__name__)


class PluginManager:
    """Top-level plugin system orchestrator.

    Coordinates discovery, installation, activation and persisted plugin state.
    """

    def __init__(self, settings: HostSettings, services: HostServices):
        self.settings = settings
        self.services = services

        self.registry = PluginRegistry()
        self.config_service = PluginConfigService(settings.config_file)
        self.engine = ActivationEngine(
            self.registry,
            services,
            context=settings.plugin_context(),
            config_provider=self.config_service.get_plugin_config,
            activation_timeout=settings.activation_timeout,
            command_timeout=settings.command_timeout,
        )
        self.installer = InstallationManager(
            self.registry,
            self.engine,
            plugins_dir=settings.plugins_dir,
            search_paths=settings.search_paths(),
            verifier=BundleVerifier(settings.signing_key, settings.require_signatures),
            app_version=settings.app_version,
            install_timeout=settings.install_timeout,
        )
        self.catalog = PluginCatalog()

    async def load_all(self) -> None:
        """Discover plugins and re-activate the ones enabled last time.

        Activation failures are logged; they never stop the host.
        """
        await self.installer.discover()
        self.catalog = await PluginCatalog.load(self.settings.catalog)

        for plugin_id in self.config_service.get_enabled_list():
            if not self.registry.has(plugin_id):
                logger.warning(f"Enabled plugin '{plugin_id}' is not installed, skipping")
                continue
            try:
                await self.engine.activate(plugin_id)
            except PluginError as e:
                logger.error(f"Failed to restore plugin '{plugin_id}': {e}")

        logger.info(
            f"Plugin system initialized, "
            f"{len(self.engine.active_ids())}/{self.registry.count()} plugins active"
        )

    async def stop_all(self) -> None:
        """Deactivate all running plugins (shutdown path)."""
        await self.engine.deactivate_all()
        logger.info("All plugins stopped")

    async def rescan(self) -> List[Plugin]:
        return await self.installer.discover()

    # ---- installation ----

    async def install(self, source: str, upgrade: bool = False) -> Plugin:
        return await self.installer.install(source, upgrade=upgrade)

    async def install_from_catalog(self, plugin_id: str, upgrade: bool = False) -> Plugin:
        entry = self.catalog.get(plugin_id)
        if entry is None:
            raise NotFoundError(f"Plugin '{plugin_id}' is not in the catalog", plugin_id)
        plugin = await self.installer.install(entry.source, upgrade=upgrade)
        if plugin.id != plugin_id:
            logger.warning(f"Catalog entry '{plugin_id}' installed a bundle with id '{plugin.id}'")
        return plugin

    async def uninstall(self, plugin_id: str) -> None:
        await self.installer.uninstall(plugin_id)
        self.config_service.forget(plugin_id)

    async def update(self, plugin_id: str) -> Plugin:
        """Reinstall a plugin from the source it was installed from.

        Raises:
            NotFoundError: If the plugin is not installed
            InstallError: If it has no recorded source, or reinstalling fails
        """
        plugin = self.registry.get(plugin_id)
        if plugin is None:
            raise NotFoundError(f"Plugin '{plugin_id}' is not installed", plugin_id)
        source = read_install_record(plugin).get("source")
        if not source:
            raise InstallError(f"Plugin '{plugin_id}' has no recorded install source", plugin_id)

        was_active = self.engine.is_active(plugin_id)
        updated = await self.installer.install(source, upgrade=True)
        if was_active:
            await self.engine.activate(updated.id)
        return updated

    # ---- activation ----

    async def activate(self, plugin_id: str) -> PluginInstance:
        """Activate a plugin and remember it for the next startup."""
        instance = await self.engine.activate(plugin_id)
        self.config_service.enable(plugin_id)
        return instance

    async def deactivate(self, plugin_id: str) -> bool:
        self.config_service.disable(plugin_id)
        return await self.engine.deactivate(plugin_id)

    async def execute_command(
        self, plugin_id: str, command: str, args: Optional[Dict[str, Any]] = None
    ) -> Any:
        return await self.engine.execute_command(plugin_id, command, args)

    def update_plugin_config(self, plugin_id: str, config: Dict[str, Any]) -> None:
        """Store plugin settings; they reach the plugin on its next activation.

        Raises:
            NotFoundError: If the plugin is not installed
        """
        if not self.registry.has(plugin_id):
            raise NotFoundError(f"Plugin '{plugin_id}' is not installed", plugin_id)
        self.config_service.update_plugin_config(plugin_id, config)

    # ---- listings ----

    def _describe(self, plugin: Plugin, instance: Optional[PluginInstance]) -> Dict[str, Any]:
        info = plugin.to_dict()
        info["state"] = (instance.state if instance else PluginState.INACTIVE).value
        info["enabled"] = self.config_service.is_enabled(plugin.id)
        return info

    def list_plugins(self) -> List[Dict[str, Any]]:
        """List all installed plugins as dicts, from one snapshot of each registry."""
        installed = self.registry.snapshot()
        instances = self.engine.instances.snapshot()
        return [self._describe(installed[i], instances.get(i)) for i in sorted(installed)]

    def get_plugin_info(self, plugin_id: str) -> Optional[Dict[str, Any]]:
        """Get plugin information as dict, or None if not installed."""
        plugin = self.registry.get(plugin_id)
        if plugin is None:
            return None
        instance = self.engine.get_instance(plugin_id)
        info = self._describe(plugin, instance)
        info["config"] = self.config_service.get_plugin_config(plugin_id)
        info["install_record"] = read_install_record(plugin)
        if instance is not None and instance.state == PluginState.ACTIVE:
            info["instance"] = instance.to_dict()
        return info

    def list_available(
        self, query: str = "", category: PluginCategory = PluginCategory.ALL
    ) -> List[Dict[str, Any]]:
        """Catalog entries matching the query, flagged with whether each is installed."""
        installed = self.registry.snapshot()
        return [
            entry.to_dict(installed=entry.id in installed)
            for entry in self.catalog.search(query, category)
        ]
