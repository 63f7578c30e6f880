"""Container for the backends behind the Host API."""

from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

from aics.services.ai_service import AIService
from aics.services.clipboard import ClipboardService
from aics.services.editor import EditorService
from aics.services.network import NetworkService
from aics.services.notifications import NotificationService
from aics.services.terminal import TerminalService
from aics.services.workspace import WorkspaceService

if TYPE_CHECKING:
    from aics.config import HostSettings


@dataclass
class HostServices:
    workspace: WorkspaceService
    terminal: TerminalService = field(default_factory=TerminalService)
    network: NetworkService = field(default_factory=NetworkService)
    clipboard: ClipboardService = field(default_factory=ClipboardService)
    notifications: NotificationService = field(default_factory=NotificationService)
    ai: AIService = field(default_factory=AIService)
    # Defaults to buffers over this workspace
    editor: Optional[EditorService] = None

    def __post_init__(self):
        if self.editor is None:
            self.editor = EditorService(self.workspace)

    @classmethod
    def from_settings(cls, settings: "HostSettings") -> "HostServices":
        return cls(
            workspace=WorkspaceService(settings.workspace),
            terminal=TerminalService(default_timeout=settings.terminal_timeout),
            ai=AIService(model=settings.ai_model),
        )
