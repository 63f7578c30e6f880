"""Workspace file access for plugins."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from aics.constants import MAX_OUTPUT_BYTES

logger = logging.getLogger(__name__)


def safe_path(path: str, base: Path) -> Path:
    """Resolve *path* relative to *base*, raising ValueError on traversal."""
    base = base.resolve()
    resolved = (base / path).resolve()
    if base not in resolved.parents and resolved != base:
        raise ValueError(f"Path traversal detected: {path!r} escapes {base}")
    return resolved


def truncate(text: str, max_bytes: int = MAX_OUTPUT_BYTES) -> str:
    """Truncate text to max_bytes."""
    encoded = text.encode("utf-8", errors="replace")
    if len(encoded) <= max_bytes:
        return text
    truncated = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return truncated + f"\n\n... [truncated, {len(encoded)} bytes total]"


class WorkspaceService:
    """Reads and writes text files under the workspace root."""

    def __init__(self, root: Path):
        self.root = root.resolve()

    def resolve(self, path: Optional[str]) -> Path:
        return safe_path(path or ".", self.root)

    async def read_file(self, path: str) -> str:
        target = self.resolve(path)
        return await asyncio.to_thread(target.read_text, encoding="utf-8")

    async def write_file(self, path: str, content: str) -> None:
        target = self.resolve(path)

        def _write():
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        logger.debug(f"Wrote {len(content)} chars to {target}")
