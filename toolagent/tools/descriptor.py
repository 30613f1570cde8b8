"""
Uniform tool descriptors.

Every tool the model can call, whether a local Python function or a tool
served by a remote MCP server, is represented by one ``ToolDescriptor``
with a name, a description, an argument schema and an ``invoke`` coroutine.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from ..models import ToolCallResult
from .schema import SchemaNode

# Error text shown to the model is capped at this many characters.
MAX_ERROR_CHARS = 500

RawArguments = Union[str, dict]
InvokeFn = Callable[[RawArguments], Awaitable[ToolCallResult]]


class ToolOrigin(Enum):
    """Where a tool's implementation lives."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class ToolDescriptor:
    """Metadata plus invocation entry point for one tool."""

    name: str
    description: str
    schema: SchemaNode
    origin: ToolOrigin
    invoke: InvokeFn = field(repr=False, compare=False)

    def to_openai_tool(self) -> dict:
        """OpenAI function-calling definition for this tool."""
        parameters = self.schema.to_json_schema()
        if parameters.get("type") != "object":
            parameters = {"type": "object", "properties": {}, "required": []}
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


@dataclass
class Toolkit:
    """A named group of tools, expanded into its members at registration."""

    name: str
    tools: list[ToolDescriptor] = field(default_factory=list)

    def get_tools(self) -> list[ToolDescriptor]:
        return list(self.tools)


def stringify_output(value: Any) -> str:
    """Render a tool's return value as text for the model."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def truncate_error(message: str) -> str:
    if len(message) > MAX_ERROR_CHARS:
        return message[:MAX_ERROR_CHARS] + "..."
    return message


def error_result(tool_name: str, message: str, call_id: str = "") -> ToolCallResult:
    """A failed tool call, phrased so the model can react to it."""
    return ToolCallResult(
        tool_name=tool_name,
        output=f"Tool '{tool_name}' execution error: {truncate_error(message)}",
        is_error=True,
        call_id=call_id,
    )
