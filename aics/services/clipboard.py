"""Clipboard backend."""

import asyncio
from typing import Optional


class ClipboardService:
    """Process-local clipboard buffer shared by all plugins."""

    def __init__(self, initial: Optional[str] = None):
        self._text = initial or ""
        self._lock = asyncio.Lock()

    async def read(self) -> str:
        async with self._lock:
            return self._text

    async def write(self, text: str) -> None:
        async with self._lock:
            self._text = text
