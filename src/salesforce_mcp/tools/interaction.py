import asyncio
import logging
from typing import Any, Optional, Protocol

import click
import mcp.types as types

from .base import CaseCreationAborted

# Configure logging
logger = logging.getLogger(__name__)

RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "response": {"type": "string", "description": "Your answer"}
    },
    "required": ["response"],
}


class Prompter(Protocol):
    async def prompt(self, message: str) -> str:
        """Show a message and return the user's answer."""


class ElicitationPrompter:
    """Asks the connected MCP client for each answer through elicitation."""

    def __init__(self, session: Any, related_request_id: Optional[types.RequestId] = None):
        self._session = session
        self._related_request_id = related_request_id

    async def prompt(self, message: str) -> str:
        result = await self._session.elicit(
            message=message,
            requestedSchema=RESPONSE_SCHEMA,
            related_request_id=self._related_request_id,
        )
        if result.action != "accept":
            logger.info(f"User responded to prompt with action: {result.action}")
            raise CaseCreationAborted("Case creation canceled by user.")
        content = result.content or {}
        return str(content.get("response", "")).strip()


class ConsolePrompter:
    """Terminal prompt for running the guided flow from a shell."""

    async def prompt(self, message: str) -> str:
        answer = await asyncio.to_thread(
            click.prompt, message, default="", show_default=False, prompt_suffix="\n> "
        )
        return answer.strip()
