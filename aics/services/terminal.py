"""Shell command execution for plugins."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from aics.constants import DEFAULT_TERMINAL_TIMEOUT
from aics.plugins.commands import TerminalResult
from aics.services.workspace import truncate

logger = logging.getLogger(__name__)


class TerminalService:
    """Runs shell commands with a timeout and bounded output."""

    def __init__(self, default_timeout: float = DEFAULT_TERMINAL_TIMEOUT):
        self.default_timeout = default_timeout

    async def execute(
        self, command: str, cwd: Optional[Path] = None, timeout: Optional[float] = None
    ) -> TerminalResult:
        timeout_s = timeout or self.default_timeout
        logger.info(f"Executing: {command} (cwd={cwd}, timeout={timeout_s}s)")

        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"Command timed out after {timeout_s}s: {command}")
            return TerminalResult(
                exit_code=None,
                stderr=f"Error: command timed out after {timeout_s}s",
                timed_out=True,
            )

        return TerminalResult(
            exit_code=proc.returncode,
            stdout=truncate(stdout.decode("utf-8", errors="replace")),
            stderr=truncate(stderr.decode("utf-8", errors="replace")),
        )
