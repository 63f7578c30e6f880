"""AI explain plugin."""

from aics.plugins.base import EditorPlugin

SYSTEM_PROMPT = "You explain source code to a developer. Be concise."


class ExplainPlugin(EditorPlugin):
    async def execute_command(self, command, args):
        if command != "explain":
            return None
        path = args["path"]
        source = await self.api.read_file(path)
        prompt = f"Explain what this file does.\n\nFile: {path}\n\n{source}"
        return await self.api.request_ai_completion(prompt, system_prompt=SYSTEM_PROMPT)


def register(api):
    return ExplainPlugin(api)
