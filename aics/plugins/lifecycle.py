"""Plugin lifecycle management - activation engine and command dispatch."""
from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
import re
import sys
import threading
import uuid
import weakref
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from types import ModuleType
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple, TYPE_CHECKING

from aics.constants import DEFAULT_ACTIVATION_TIMEOUT, DEFAULT_COMMAND_TIMEOUT
from aics.plugins.api import PluginAPI
from aics.plugins.errors import CommandError, LoadError, NotFoundError, PluginError
from aics.plugins.manifest import check_compatibility
from aics.plugins.registry import (
    InstanceRegistry,
    Plugin,
    PluginContext,
    PluginInstance,
    PluginRegistry,
    PluginState,
)

if TYPE_CHECKING:
    from aics.services.host import HostServices

logger = logging.getLogger(__name__)

# sys.path is process-global; entry files are imported one at a time
_import_lock = threading.Lock()


async def call_hook(func: Callable, *args: Any) -> Any:
    """Call a plugin hook that may be sync or async. Sync hooks run in a worker thread."""
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


class ActivationEngine:
    """Owns live plugin instances and drives the inactive → active → inactive state machine.

    Operations on one plugin id are serialized by a per-id asyncio.Lock; different
    ids proceed concurrently.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        services: HostServices,
        context: Optional[PluginContext] = None,
        config_provider: Optional[Callable[[str], Dict[str, Any]]] = None,
        activation_timeout: float = DEFAULT_ACTIVATION_TIMEOUT,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ):
        self.registry = registry
        self.services = services
        self.context = context or PluginContext()
        self.config_provider = config_provider or (lambda plugin_id: {})
        self.activation_timeout = activation_timeout
        self.command_timeout = command_timeout
        self.instances = InstanceRegistry()
        # Entries disappear once nothing holds or awaits them
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, plugin_id: str) -> asyncio.Lock:
        lock = self._locks.get(plugin_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[plugin_id] = lock
        return lock

    @asynccontextmanager
    async def plugin_lock(self, plugin_id: str) -> AsyncIterator[None]:
        """Hold the activation lock for ``plugin_id``."""
        async with self._lock_for(plugin_id):
            yield

    # ---- queries ----

    def state(self, plugin_id: str) -> PluginState:
        instance = self.instances.get(plugin_id)
        return instance.state if instance else PluginState.INACTIVE

    def is_active(self, plugin_id: str) -> bool:
        return self.state(plugin_id) == PluginState.ACTIVE

    def active_ids(self) -> list[str]:
        return sorted(i.id for i in self.instances.get_active())

    def get_instance(self, plugin_id: str) -> Optional[PluginInstance]:
        return self.instances.get(plugin_id)

    def get_ui_provider(self, plugin_id: str) -> Any:
        instance = self.instances.get(plugin_id)
        if instance is None or instance.state != PluginState.ACTIVE:
            return None
        return instance.ui_provider

    # ---- activation ----

    async def activate(self, plugin_id: str) -> PluginInstance:
        """Activate a plugin and, first, its declared dependencies.

        Returns the live instance; activating an active plugin is a no-op.

        Raises:
            NotFoundError: If the plugin is not installed
            IncompatibleVersionError: If the host is older than the plugin requires
            LoadError: On a missing/cyclic dependency, import failure, hook failure or timeout
        """
        return await self._activate(plugin_id, ())

    async def _activate(self, plugin_id: str, chain: Tuple[str, ...]) -> PluginInstance:
        if plugin_id in chain:
            cycle = " -> ".join(chain + (plugin_id,))
            raise LoadError(f"Dependency cycle: {cycle}", chain[0])

        plugin = self.registry.get(plugin_id)
        if plugin is None:
            if chain:
                raise LoadError(
                    f"Plugin '{chain[-1]}' depends on '{plugin_id}', which is not installed",
                    chain[-1],
                )
            raise NotFoundError(f"Plugin '{plugin_id}' is not installed", plugin_id)

        existing = self.instances.get(plugin_id)
        if existing is not None and existing.state == PluginState.ACTIVE:
            return existing

        check_compatibility(plugin.manifest, self.context.app_version)

        for dep_id in plugin.manifest.dependencies or ():
            await self._activate(dep_id, chain + (plugin_id,))

        async with self._lock_for(plugin_id):
            existing = self.instances.get(plugin_id)
            if existing is not None and existing.state == PluginState.ACTIVE:
                return existing
            plugin = self.registry.get(plugin_id)
            if plugin is None:
                raise NotFoundError(f"Plugin '{plugin_id}' is not installed", plugin_id)
            return await self._start(plugin)

    async def _start(self, plugin: Plugin) -> PluginInstance:
        instance = PluginInstance(plugin=plugin, state=PluginState.ACTIVATING)
        instance.api = PluginAPI(plugin.manifest, self.services, self.config_provider(plugin.id))
        self.instances.register(instance)
        logger.info(f"Activating plugin: {plugin.id}")

        try:
            await asyncio.wait_for(self._load_and_initialize(instance), self.activation_timeout)
        except asyncio.TimeoutError as e:
            self._abort(instance)
            raise LoadError(
                f"Activation of '{plugin.id}' timed out after {self.activation_timeout}s", plugin.id
            ) from e
        except PluginError:
            self._abort(instance)
            raise
        except Exception as e:
            self._abort(instance)
            raise LoadError(f"Failed to activate '{plugin.id}': {e}", plugin.id) from e
        except asyncio.CancelledError:
            self._abort(instance)
            raise

        instance.state = PluginState.ACTIVE
        instance.activated_at = datetime.now(timezone.utc)
        logger.info(f"Activated plugin: {plugin.id}")
        return instance

    async def _load_and_initialize(self, instance: PluginInstance) -> None:
        plugin = instance.plugin
        module = await asyncio.to_thread(self._load_module, plugin)
        instance.module_name = module.__name__

        entry = getattr(module, plugin.entry_callable, None)
        if entry is None:
            raise LoadError(
                f"{plugin.manifest.entry_file} has no callable '{plugin.entry_callable}'", plugin.id
            )
        if not callable(entry):
            raise LoadError(
                f"{plugin.manifest.entry_file}:{plugin.entry_callable} is not callable", plugin.id
            )

        result = await call_hook(entry, instance.api)
        instance.plugin_object = result

        initialize = getattr(result, "initialize", None) if result is not None else None
        if callable(initialize):
            await call_hook(initialize, self.context)

    def _load_module(self, plugin: Plugin) -> ModuleType:
        """Import the entry file into a fresh, uniquely named module."""
        safe_id = re.sub(r"\W", "_", plugin.id)
        module_name = f"aics_plugin_{safe_id}_{uuid.uuid4().hex[:8]}"
        try:
            entry_file = plugin.entry_file
        except PluginError as e:
            raise LoadError(str(e), plugin.id) from e

        spec = importlib.util.spec_from_file_location(module_name, entry_file)
        if spec is None or spec.loader is None:
            raise LoadError(f"Cannot load module from {entry_file}", plugin.id)
        module = importlib.util.module_from_spec(spec)

        bundle_dir = str(plugin.bundle_path)
        with _import_lock:
            # Plugin-local imports resolve against the bundle directory
            sys.path.insert(0, bundle_dir)
            sys.modules[module_name] = module
            try:
                spec.loader.exec_module(module)
            except Exception as e:
                sys.modules.pop(module_name, None)
                raise LoadError(f"Failed to import {entry_file}: {e}", plugin.id) from e
            finally:
                if bundle_dir in sys.path:
                    sys.path.remove(bundle_dir)

        logger.debug(f"Loaded {entry_file} as {module_name}")
        return module

    def _abort(self, instance: PluginInstance) -> None:
        if instance.api is not None:
            instance.api.revoke()
        self.instances.remove(instance.id)
        self._drop_module(instance)
        instance.state = PluginState.INACTIVE
        logger.error(f"Activation of plugin {instance.id} failed, reverted to inactive")

    @staticmethod
    def _drop_module(instance: PluginInstance) -> None:
        if instance.module_name:
            sys.modules.pop(instance.module_name, None)
            instance.module_name = None

    # ---- deactivation ----

    async def deactivate(self, plugin_id: str) -> bool:
        """Deactivate a plugin. No-op (returns False) if it is not active."""
        async with self._lock_for(plugin_id):
            return await self.deactivate_locked(plugin_id)

    async def deactivate_locked(self, plugin_id: str) -> bool:
        """Deactivate while the caller already holds ``plugin_lock(plugin_id)``."""
        instance = self.instances.get(plugin_id)
        if instance is None or instance.state != PluginState.ACTIVE:
            logger.debug(f"Plugin {plugin_id} not active, skip deactivate")
            return False

        instance.state = PluginState.DEACTIVATING
        logger.info(f"Deactivating plugin: {plugin_id}")
        try:
            cleanup = getattr(instance.plugin_object, "cleanup", None)
            if instance.plugin_object is not None and callable(cleanup):
                try:
                    await asyncio.wait_for(call_hook(cleanup), self.activation_timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"Cleanup of plugin {plugin_id} timed out")
                except Exception as e:
                    logger.error(f"Cleanup of plugin {plugin_id} failed: {e}", exc_info=True)
        finally:
            if instance.api is not None:
                instance.api.revoke()
            self.instances.remove(plugin_id)
            self._drop_module(instance)
            instance.state = PluginState.INACTIVE
            instance.plugin_object = None

        logger.info(f"Deactivated plugin: {plugin_id}")
        return True

    async def deactivate_all(self) -> None:
        """Deactivate every active plugin, most recently activated first."""
        active = sorted(
            self.instances.get_active(),
            key=lambda i: i.activated_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        for instance in active:
            await self.deactivate(instance.id)

    # ---- commands ----

    async def execute_command(
        self, plugin_id: str, command: str, args: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Run a plugin command.

        Returns None if the plugin is not active or does not know the command.

        Raises:
            PluginError: Raised inside the command (e.g. MissingPermissionError), unchanged
            CommandError: If the command raised anything else or timed out
        """
        if not self.is_active(plugin_id):
            return None
        args = dict(args or {})

        async with self._lock_for(plugin_id):
            instance = self.instances.get(plugin_id)
            if instance is None or instance.state != PluginState.ACTIVE:
                return None

            handler = instance.api.commands.get(command)
            if handler is not None:
                call = call_hook(handler, args)
            else:
                fallback = getattr(instance.plugin_object, "execute_command", None)
                if instance.plugin_object is None or not callable(fallback):
                    logger.debug(f"Plugin {plugin_id} has no command '{command}'")
                    return None
                call = call_hook(fallback, command, args)

            try:
                return await asyncio.wait_for(call, self.command_timeout)
            except asyncio.TimeoutError as e:
                raise CommandError(
                    f"Command '{command}' of '{plugin_id}' timed out after {self.command_timeout}s",
                    plugin_id,
                ) from e
            except PluginError:
                raise
            except Exception as e:
                logger.error(f"Command '{command}' of plugin {plugin_id} failed: {e}")
                raise CommandError(f"Command '{command}' failed: {e}", plugin_id) from e
