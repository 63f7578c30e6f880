"""Git status plugin: runs git in the workspace and exposes a status bar item."""

from aics.plugins.base import EditorPlugin


class StatusBarItem:
    def __init__(self):
        self.text = "git: ?"

    def render(self) -> dict:
        return {"type": "statusBarItem", "text": self.text}


class GitStatusPlugin(EditorPlugin):
    def __init__(self, api):
        super().__init__(api)
        self.status_item = StatusBarItem()

    async def initialize(self, context):
        await super().initialize(context)
        self.api.register_ui_provider(self.status_item)

    async def status(self, args):
        result = await self.api.execute_terminal("git status --short --branch", timeout=10)
        if result.exit_code == 0:
            first_line = result.stdout.splitlines()[0] if result.stdout else ""
            self.status_item.text = f"git: {first_line.lstrip('# ')}"
        return result


def register(api):
    plugin = GitStatusPlugin(api)
    api.register_command("status", plugin.status)
    return plugin
