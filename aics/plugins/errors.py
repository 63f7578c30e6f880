"""Plugin error hierarchy."""

from typing import Iterable, Optional


class PluginError(Exception):
    """Base class for every plugin-system failure."""

    def __init__(self, message: str, plugin_id: Optional[str] = None):
        super().__init__(message)
        self.plugin_id = plugin_id


class ParseError(PluginError):
    """Manifest is malformed, incomplete, or uses values outside the closed enums."""


class InstallError(PluginError):
    """Bundle could not be fetched, extracted, verified or registered."""


class NotFoundError(PluginError):
    """No installed plugin has the requested identifier."""


class LoadError(PluginError):
    """Entry point failed to load, or the plugin's initialize hook failed."""


class IncompatibleVersionError(PluginError):
    """Manifest's minimum host version is newer than the running host."""

    def __init__(self, plugin_id: str, required: str, running: str):
        super().__init__(
            f"Plugin '{plugin_id}' requires host version >= {required} (running {running})",
            plugin_id,
        )
        self.required = required
        self.running = running


class MissingPermissionError(PluginError):
    """Host API call requires a permission the plugin did not declare."""

    def __init__(self, plugin_id: str, operation: str, missing: Iterable[str]):
        self.operation = operation
        self.missing = sorted(missing)
        super().__init__(
            f"Plugin '{plugin_id}' lacks permission(s) {', '.join(self.missing)} for '{operation}'",
            plugin_id,
        )


class CommandError(PluginError):
    """A plugin command failed, timed out, or sent an invalid Host API request."""


class InactivePluginError(PluginError):
    """A revoked PluginAPI was used after its plugin was deactivated."""
