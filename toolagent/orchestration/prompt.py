"""
Prompt assembly.

Builds the OpenAI-style message list sent to the model at the start of a
run: system instructions (with formatting instructions when structured
output is required), prior conversation turns, and the current request
with optional image attachments. The tool-call transcript is appended by
the loop after these messages.
"""

import logging
from typing import Optional, Sequence

from ..models import Attachment, ConversationTurn, ToolCallRequest, ToolCallResult
from ..tools.descriptor import stringify_output

logger = logging.getLogger(__name__)

_ROLE_MAP = {"human": "user", "user": "user", "ai": "assistant", "assistant": "assistant"}


class PromptAssembler:
    """Builds the initial message sequence for a run."""

    def __init__(
        self,
        system_message: str,
        formatting_instructions: Optional[str] = None,
        passthrough_binary_images: bool = True,
    ):
        self.system_message = system_message
        self.formatting_instructions = formatting_instructions
        self.passthrough_binary_images = passthrough_binary_images

    def system_prompt(self) -> str:
        if self.formatting_instructions:
            return f"{self.system_message}\n\n{self.formatting_instructions}"
        return self.system_message

    def build(
        self,
        request_text: str,
        history: Sequence[ConversationTurn] = (),
        attachments: Sequence[Attachment] = (),
    ) -> list[dict]:
        """
        Build [system, *history, human] messages.

        Args:
            request_text: The current request.
            history: Prior turns from memory, oldest first.
            attachments: Binary attachments of the input item. Images are
                inlined as data URLs when passthrough is enabled; anything
                else is dropped.
        """
        messages: list[dict] = [{"role": "system", "content": self.system_prompt()}]

        for turn in history:
            role = _ROLE_MAP.get(turn.role)
            if role is None:
                logger.warning("Skipping memory turn with unknown role '%s'", turn.role)
                continue
            messages.append({"role": role, "content": turn.content})

        messages.append({"role": "user", "content": self._human_content(request_text, attachments)})
        return messages

    def _human_content(self, request_text: str, attachments: Sequence[Attachment]):
        if not self.passthrough_binary_images or not attachments:
            return request_text

        images = [a for a in attachments if a.is_image]
        dropped = len(attachments) - len(images)
        if dropped:
            logger.debug("Dropping %d non-image attachment(s)", dropped)
        if not images:
            return request_text

        parts: list[dict] = [{"type": "text", "text": request_text}]
        for image in images:
            parts.append({"type": "image_url", "image_url": {"url": image.to_data_url()}})
        return parts


def tool_calls_message(calls: Sequence[ToolCallRequest], content: Optional[str] = None) -> dict:
    """Assistant message recording the tool calls of one model turn."""
    return {
        "role": "assistant",
        "content": content,
        "tool_calls": [
            {
                "id": call.call_id,
                "type": "function",
                "function": {
                    "name": call.tool_name,
                    "arguments": (
                        call.raw_arguments
                        if isinstance(call.raw_arguments, str)
                        else stringify_output(call.raw_arguments)
                    ),
                },
            }
            for call in calls
        ],
    }


def tool_result_message(result: ToolCallResult) -> dict:
    """Tool message carrying one result back to the model."""
    return {
        "role": "tool",
        "tool_call_id": result.call_id,
        "name": result.tool_name,
        "content": result.output,
    }
