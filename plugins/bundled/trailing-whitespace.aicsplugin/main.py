"""Trailing whitespace formatter plugin."""

from typing import Any, Dict

from aics.plugins.api import PluginAPI
from aics.plugins.base import EditorPlugin


def strip_trailing_whitespace(text: str, final_newline: bool = True) -> str:
    lines = [line.rstrip() for line in text.splitlines()]
    result = "\n".join(lines)
    if final_newline and lines:
        result += "\n"
    return result


class TrailingWhitespacePlugin(EditorPlugin):
    """Formats files by removing trailing spaces and tabs."""

    async def format_file(self, args: Dict[str, Any]) -> Dict[str, Any]:
        path = args["path"]
        original = await self.api.read_file(path)
        formatted = strip_trailing_whitespace(
            original, self.api.config.get("final_newline", True)
        )
        changed = formatted != original
        if changed:
            await self.api.write_file(path, formatted)
            await self.api.show_notification(f"Formatted {path}", level="success")
        self.logger.info(f"format {path}: changed={changed}")
        return {"path": path, "changed": changed}


def register(api: PluginAPI) -> TrailingWhitespacePlugin:
    """Plugin entry point."""
    plugin = TrailingWhitespacePlugin(api)
    api.register_command("format", plugin.format_file)
    return plugin
