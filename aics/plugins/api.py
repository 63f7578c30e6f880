"""PluginAPI - the permission-gated Host API object passed to each plugin's entry callable."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Union, TYPE_CHECKING

from pydantic import ValidationError

from aics.plugins.commands import (
    AICompletionRequest,
    ClipboardReadRequest,
    ClipboardWriteRequest,
    EditorGetActiveRequest,
    EditorInsertTextRequest,
    EditorOpenRequest,
    EditorSetCursorRequest,
    EditorSetTextRequest,
    EditorState,
    ExecuteTerminalRequest,
    HOST_REQUEST_TYPES,
    HostRequest,
    HttpResponse,
    NetworkRequest,
    NotificationRequest,
    ReadFileRequest,
    TerminalResult,
    WriteFileRequest,
    parse_host_request,
)
from aics.plugins.errors import CommandError, InactivePluginError, MissingPermissionError, PluginError
from aics.plugins.manifest import PluginManifest
from aics.plugins.permissions import missing_permissions

if TYPE_CHECKING:
    from aics.services.host import HostServices


class PluginAPI:
    """API object provided to a plugin on activation.

    Every privileged operation goes through :meth:`call`, which checks the
    permissions declared in the plugin's manifest before reaching host services.
    The object is revoked when the plugin is deactivated.
    """

    def __init__(
        self,
        manifest: PluginManifest,
        services: HostServices,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.manifest = manifest
        self.plugin_id = manifest.id
        self._services = services
        self._config = dict(config or {})
        self._commands: Dict[str, Callable] = {}
        self._ui_provider: Any = None
        self._revoked = False
        self._logger = logging.getLogger(f"plugin.{manifest.id}")

    # ---- lifecycle ----

    def revoke(self) -> None:
        """Invalidate this API; any further call raises InactivePluginError."""
        self._revoked = True
        self._commands = {}
        self._ui_provider = None

    @property
    def revoked(self) -> bool:
        return self._revoked

    def _ensure_active(self) -> None:
        if self._revoked:
            raise InactivePluginError(f"Plugin '{self.plugin_id}' is not active", self.plugin_id)

    # ---- ungated helpers ----

    @property
    def workspace_path(self) -> str:
        self._ensure_active()
        return str(self._services.workspace.root)

    @property
    def config(self) -> Dict[str, Any]:
        """The plugin's stored settings (a copy)."""
        return dict(self._config)

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        """Get a logger for this plugin.

        Args:
            name: Optional sub-logger name (appended to plugin.{plugin_id})
        """
        if name:
            return logging.getLogger(f"plugin.{self.plugin_id}.{name}")
        return self._logger

    def register_command(self, name: str, handler: Callable) -> None:
        """Register a command handler (sync or async, called as handler(args))."""
        self._ensure_active()
        if not callable(handler):
            raise TypeError(f"Handler for command '{name}' is not callable")
        self._commands[name] = handler
        self._logger.info(f"Registered command: {name}")

    def register_ui_provider(self, provider: Any) -> None:
        """Store a UI provider object. The host keeps it but never renders it."""
        self._ensure_active()
        self._ui_provider = provider
        self._logger.info("Registered UI provider")

    @property
    def commands(self) -> Dict[str, Callable]:
        """Get all registered command handlers."""
        return self._commands

    @property
    def ui_provider(self) -> Any:
        return self._ui_provider

    # ---- gated dispatch ----

    async def call(self, request: Union[HostRequest, Dict[str, Any]]) -> Any:
        """Perform a Host API operation.

        Args:
            request: A request model, or a dict with an ``op`` key

        Raises:
            InactivePluginError: If the plugin has been deactivated
            CommandError: If the payload is invalid or the host service fails
            MissingPermissionError: If the manifest lacks a required permission
        """
        self._ensure_active()

        if isinstance(request, dict):
            try:
                request = parse_host_request(request)
            except ValidationError as e:
                raise CommandError(f"Invalid Host API request: {e}", self.plugin_id) from e
        elif not isinstance(request, HOST_REQUEST_TYPES):
            raise CommandError(
                f"Invalid Host API request: expected a request model or dict, "
                f"got {type(request).__name__}",
                self.plugin_id,
            )

        missing = missing_permissions(self.manifest, request.op)
        if missing:
            self._logger.warning(
                f"Denied {request.op}: missing {sorted(p.value for p in missing)}"
            )
            raise MissingPermissionError(self.plugin_id, request.op, (p.value for p in missing))

        try:
            return await self._dispatch(request)
        except PluginError:
            raise
        except Exception as e:
            raise CommandError(f"{request.op} failed: {e}", self.plugin_id) from e

    async def _dispatch(self, request: HostRequest) -> Any:
        s = self._services
        if isinstance(request, ReadFileRequest):
            return await s.workspace.read_file(request.path)
        if isinstance(request, WriteFileRequest):
            await s.workspace.write_file(request.path, request.content)
            return None
        if isinstance(request, ExecuteTerminalRequest):
            cwd = s.workspace.resolve(request.cwd)
            return await s.terminal.execute(request.command, cwd=cwd, timeout=request.timeout)
        if isinstance(request, NetworkRequest):
            return await s.network.request(request)
        if isinstance(request, ClipboardReadRequest):
            return await s.clipboard.read()
        if isinstance(request, ClipboardWriteRequest):
            await s.clipboard.write(request.text)
            return None
        if isinstance(request, NotificationRequest):
            s.notifications.notify(self.plugin_id, request.message, request.level)
            return None
        if isinstance(request, AICompletionRequest):
            return await s.ai.complete(request.prompt, system_prompt=request.system_prompt)
        if isinstance(request, EditorOpenRequest):
            return await s.editor.open_file(request.path)
        if isinstance(request, EditorGetActiveRequest):
            return await s.editor.active()
        if isinstance(request, EditorSetCursorRequest):
            await s.editor.set_cursor(request.offset)
            return None
        if isinstance(request, EditorSetTextRequest):
            await s.editor.set_text(request.text)
            return None
        if isinstance(request, EditorInsertTextRequest):
            await s.editor.insert_text(request.text)
            return None
        raise CommandError(f"Unsupported Host API operation: {request.op}", self.plugin_id)

    # ---- typed convenience methods ----

    def _build(self, model_cls, **fields):
        try:
            return model_cls(**fields)
        except ValidationError as e:
            raise CommandError(f"Invalid Host API request: {e}", self.plugin_id) from e

    async def read_file(self, path: str) -> str:
        return await self.call(self._build(ReadFileRequest, path=path))

    async def write_file(self, path: str, content: str) -> None:
        await self.call(self._build(WriteFileRequest, path=path, content=content))

    async def execute_terminal(
        self, command: str, cwd: Optional[str] = None, timeout: Optional[float] = None
    ) -> TerminalResult:
        return await self.call(
            self._build(ExecuteTerminalRequest, command=command, cwd=cwd, timeout=timeout)
        )

    async def http_request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        return await self.call(
            self._build(
                NetworkRequest,
                method=method,
                url=url,
                headers=headers or {},
                body=body,
                timeout=timeout,
            )
        )

    async def read_clipboard(self) -> str:
        return await self.call(ClipboardReadRequest())

    async def write_clipboard(self, text: str) -> None:
        await self.call(self._build(ClipboardWriteRequest, text=text))

    async def show_notification(self, message: str, level: str = "info") -> None:
        await self.call(self._build(NotificationRequest, message=message, level=level))

    async def request_ai_completion(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        return await self.call(
            self._build(AICompletionRequest, prompt=prompt, system_prompt=system_prompt)
        )

    async def open_file(self, path: str) -> EditorState:
        return await self.call(self._build(EditorOpenRequest, path=path))

    async def get_active_editor(self) -> Optional[EditorState]:
        return await self.call(EditorGetActiveRequest())

    async def set_cursor(self, offset: int) -> None:
        await self.call(self._build(EditorSetCursorRequest, offset=offset))

    async def set_editor_text(self, text: str) -> None:
        await self.call(self._build(EditorSetTextRequest, text=text))

    async def insert_text(self, text: str) -> None:
        """Insert at the cursor of the active document."""
        await self.call(self._build(EditorInsertTextRequest, text=text))
