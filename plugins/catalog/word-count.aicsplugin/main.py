"""Word count plugin."""


def register(api):
    async def count(args):
        text = await api.read_file(args["path"])
        return {
            "lines": len(text.splitlines()),
            "words": len(text.split()),
            "characters": len(text),
        }

    api.register_command("count", count)
