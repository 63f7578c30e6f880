"""AI completion service backed by the Claude Agent SDK."""

import logging
from typing import Optional

from claude_agent_sdk import AssistantMessage, ClaudeAgentOptions, ClaudeSDKClient, TextBlock

from aics.constants import DEFAULT_AI_MODEL

logger = logging.getLogger(__name__)


class AIService:
    """Single-turn, tool-less completions for plugins."""

    def __init__(self, model: str = DEFAULT_AI_MODEL):
        self.model = model

    async def complete(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        options = ClaudeAgentOptions(
            model=self.model,
            system_prompt=system_prompt,
            allowed_tools=[],
            max_turns=1,
        )

        parts = []
        async with ClaudeSDKClient(options=options) as client:
            await client.query(prompt)
            async for msg in client.receive_response():
                if isinstance(msg, AssistantMessage):
                    for block in msg.content:
                        if isinstance(block, TextBlock):
                            parts.append(block.text)

        text = "".join(parts)
        logger.info(f"AI completion: {len(prompt)} chars in, {len(text)} chars out")
        return text
