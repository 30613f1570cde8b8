"""
Tool definitions for the orchestration loop.

Renders a ToolRegistry as OpenAI-style JSON tool definitions, and formats
those into the Qwen3 ChatML ``<tools>`` prompt block used by models that
emit ``<tool_call>`` XML instead of native tool calls.
"""

import json
import logging

from ..tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def build_tool_definitions(registry: ToolRegistry) -> list[dict]:
    """
    Build OpenAI function-calling tool definitions from the registry.

    Args:
        registry: The run's tool registry.

    Returns:
        List of OpenAI-format tool definitions, in registration order.
    """
    tools = registry.tool_definitions()
    logger.debug("Advertising %d tools to the model", len(tools))
    return tools


def build_tools_prompt_block(tools: list[dict]) -> str:
    """
    Format tool definitions into the Qwen3 ChatML ``<tools>`` prompt block.

    Args:
        tools: List of OpenAI-format tool definitions.

    Returns:
        Prompt block to append to the system prompt.
    """
    lines = [
        "",
        "# Tools",
        "",
        "You may call one or more functions to assist with the user query.",
        "",
        "You are provided with function signatures within <tools></tools> XML tags:",
        "<tools>",
    ]
    lines.extend(json.dumps(tool, separators=(",", ":")) for tool in tools)
    lines.extend(
        [
            "</tools>",
            "",
            "For each function call, return a json object with function name and arguments "
            "within <tool_call></tool_call> XML tags:",
            "<tool_call>",
            '{"name": <function-name>, "arguments": <args-json-object>}',
            "</tool_call>",
        ]
    )
    return "\n".join(lines)
