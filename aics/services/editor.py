"""In-memory editor buffers shared by plugins."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, Optional

from aics.plugins.commands import EditorState
from aics.services.workspace import WorkspaceService

logger = logging.getLogger(__name__)

LANGUAGES = {
    ".py": "python",
    ".js": "javascript",
    ".ts": "typescript",
    ".json": "json",
    ".md": "markdown",
    ".swift": "swift",
    ".go": "go",
    ".rs": "rust",
    ".sh": "shell",
    ".html": "html",
    ".css": "css",
}


def detect_language(path: str) -> str:
    return LANGUAGES.get(PurePosixPath(path).suffix.lower(), "plaintext")


@dataclass
class _Buffer:
    path: str
    text: str
    cursor: int = 0

    def state(self) -> EditorState:
        return EditorState(
            path=self.path, language=detect_language(self.path), text=self.text, cursor=self.cursor
        )


class EditorService:
    """Open documents keyed by workspace-relative path, plus the active one.

    Buffers are not written back to disk; plugins save through the workspace.
    """

    def __init__(self, workspace: WorkspaceService):
        self.workspace = workspace
        self._buffers: Dict[str, _Buffer] = {}
        self._active: Optional[str] = None
        self._lock = asyncio.Lock()

    async def open_file(self, path: str) -> EditorState:
        """Open (or focus) a workspace file and make it the active document."""
        key = self.workspace.resolve(path).relative_to(self.workspace.root).as_posix()
        async with self._lock:
            buffer = self._buffers.get(key)
            if buffer is None:
                buffer = _Buffer(key, await self.workspace.read_file(key))
                self._buffers[key] = buffer
                logger.debug(f"Opened {key} in editor")
            self._active = key
            return buffer.state()

    async def active(self) -> Optional[EditorState]:
        async with self._lock:
            buffer = self._active_buffer()
            return buffer.state() if buffer else None

    async def set_text(self, text: str) -> None:
        async with self._lock:
            buffer = self._require_active()
            buffer.text = text
            buffer.cursor = min(buffer.cursor, len(text))

    async def insert_text(self, text: str) -> None:
        """Insert at the cursor of the active document and move the cursor past it."""
        async with self._lock:
            buffer = self._require_active()
            buffer.text = buffer.text[: buffer.cursor] + text + buffer.text[buffer.cursor :]
            buffer.cursor += len(text)

    async def set_cursor(self, offset: int) -> None:
        async with self._lock:
            buffer = self._require_active()
            buffer.cursor = max(0, min(offset, len(buffer.text)))

    def _active_buffer(self) -> Optional[_Buffer]:
        return self._buffers.get(self._active) if self._active else None

    def _require_active(self) -> _Buffer:
        buffer = self._active_buffer()
        if buffer is None:
            raise ValueError("No active editor")
        return buffer
