"""Editor plugin base class."""
from __future__ import annotations

from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from aics.plugins.api import PluginAPI
    from aics.plugins.registry import PluginContext


class EditorPlugin:
    """Optional base class for objects returned by a plugin's entry callable.

    The host only relies on duck typing: ``initialize(context)``, ``cleanup()``
    and ``execute_command(command, args)`` are each called if present, and may be
    plain or async methods.
    """

    def __init__(self, api: PluginAPI):
        self.api = api
        self.context: Optional[PluginContext] = None
        self.logger = api.get_logger()

    async def initialize(self, context: PluginContext) -> None:
        """Called once after activation. Override for setup."""
        self.context = context

    async def cleanup(self) -> None:
        """Called on deactivation. Override to release resources."""
        pass

    async def execute_command(self, command: str, args: Dict[str, Any]) -> Any:
        """Fallback for commands not registered through ``api.register_command``."""
        return None
