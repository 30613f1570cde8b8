"""
LLM Call Interface for ToolAgent

Defines the contract the orchestration loop needs from a chat model, and
an implementation over any OpenAI-compatible endpoint (OpenAI, vLLM,
SGLang, Ollama's /v1 API). Two tool-call formats are supported:

- ``native``: tools passed through the ``tools`` API parameter
- ``xml``: Qwen3 ChatML, tools embedded in the system prompt as a
  ``<tools>`` block and calls parsed from ``<tool_call>`` tags in the text
"""

import json
import logging
import re
import uuid
from typing import Any, Optional, Protocol, Union

from openai import AsyncOpenAI

from .config import config
from .models import ContentSegment, ModelResponse, ToolCallRequest
from .orchestration.tool_defs import build_tools_prompt_block

logger = logging.getLogger(__name__)

TOOL_CALL_FORMATS = ("native", "xml")

_TOOL_CALL_PATTERN = re.compile(r"<tool_call>\s*(.*?)\s*</tool_call>", re.DOTALL)


class ChatModel(Protocol):
    """What the orchestration loop requires from a language model."""

    async def invoke(self, messages: list[dict], tools: list[dict]) -> ModelResponse:
        """Send the conversation and tool definitions, return the reply."""
        ...


def parse_content(content: Any) -> Union[str, list[ContentSegment], None]:
    """Normalize provider content (string or list of typed parts)."""
    if content is None or isinstance(content, str):
        return content
    if isinstance(content, list):
        segments = []
        for part in content:
            if isinstance(part, dict):
                segments.append(
                    ContentSegment(type=part.get("type", "text"), text=part.get("text"), data=part)
                )
            elif isinstance(part, str):
                segments.append(ContentSegment(type="text", text=part))
            else:
                segments.append(
                    ContentSegment(
                        type=getattr(part, "type", "unknown"), text=getattr(part, "text", None)
                    )
                )
        return segments
    return str(content)


def parse_tool_calls(content: str) -> list[ToolCallRequest]:
    """
    Parse every ``<tool_call>`` block from model output.

    The Qwen3 ChatML format outputs tool calls as::

        <tool_call>
        {"name": "lookup", "arguments": {"query": "test"}}
        </tool_call>

    Blocks with malformed JSON or no name are skipped.
    """
    calls: list[ToolCallRequest] = []
    for block in _TOOL_CALL_PATTERN.findall(content):
        try:
            data = json.loads(block)
        except json.JSONDecodeError:
            logger.warning("Failed to parse <tool_call> JSON: %s", block[:200])
            continue
        if not isinstance(data, dict) or not data.get("name"):
            continue
        arguments = data.get("arguments", {})
        if not isinstance(arguments, (str, dict)):
            arguments = {}
        calls.append(
            ToolCallRequest(
                tool_name=data["name"],
                raw_arguments=arguments,
                call_id=f"call_{uuid.uuid4().hex[:12]}",
            )
        )
    return calls


def strip_tags(content: str) -> str:
    """Remove ``<think>`` and ``<tool_call>`` blocks, complete or truncated."""
    result = re.sub(r"<think>.*?</think>", "", content, flags=re.DOTALL)
    result = re.sub(r"<tool_call>.*?</tool_call>", "", result, flags=re.DOTALL)
    result = re.sub(r"<think>.*$", "", result, flags=re.DOTALL)
    result = re.sub(r"<tool_call>.*$", "", result, flags=re.DOTALL)
    return result


def to_xml_messages(messages: list[dict], tools: list[dict]) -> list[dict]:
    """
    Rewrite a native-format conversation for an XML tool-call model.

    The tools block is appended to the first system message, assistant
    tool calls become ``<tool_call>`` text and tool results become
    ``<tool_response>`` user messages.
    """
    converted: list[dict] = []
    tools_block = build_tools_prompt_block(tools) if tools else ""
    for message in messages:
        role = message.get("role")
        if role == "system" and tools_block:
            converted.append({"role": "system", "content": f"{message['content']}{tools_block}"})
            tools_block = ""
        elif role == "assistant" and message.get("tool_calls"):
            blocks = [message.get("content") or ""]
            for call in message["tool_calls"]:
                function = call["function"]
                arguments = function["arguments"]
                try:
                    arguments = json.loads(arguments)
                except (TypeError, json.JSONDecodeError):
                    pass
                payload = json.dumps({"name": function["name"], "arguments": arguments})
                blocks.append(f"<tool_call>\n{payload}\n</tool_call>")
            converted.append({"role": "assistant", "content": "\n".join(b for b in blocks if b)})
        elif role == "tool":
            converted.append(
                {
                    "role": "user",
                    "content": f"<tool_response>\n{message['content']}\n</tool_response>",
                }
            )
        else:
            converted.append(message)
    return converted


class LLMClient:
    """Chat model over an OpenAI-compatible endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tool_call_format: Optional[str] = None,
    ):
        self.base_url = base_url or config.model.base_url
        self.model = model or config.model.model
        self.temperature = temperature if temperature is not None else config.model.temperature
        self.max_tokens = max_tokens if max_tokens is not None else config.model.max_tokens
        self.tool_call_format = tool_call_format or config.model.tool_call_format
        if self.tool_call_format not in TOOL_CALL_FORMATS:
            raise ValueError(f"Unknown tool call format: {self.tool_call_format}")
        self._client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key or config.model.api_key or "not-needed",
        )

    async def invoke(self, messages: list[dict], tools: list[dict]) -> ModelResponse:
        """
        Call the model once.

        Errors from the endpoint propagate; retry policy belongs to the
        caller.
        """
        if self.tool_call_format == "xml":
            request_messages = to_xml_messages(messages, tools)
        else:
            request_messages = messages

        create_kwargs: dict = {
            "model": self.model,
            "messages": request_messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools and self.tool_call_format == "native":
            create_kwargs["tools"] = tools

        response = await self._client.chat.completions.create(**create_kwargs)
        message = response.choices[0].message
        usage = self._usage(response)

        if self.tool_call_format == "xml":
            text = message.content or ""
            calls = parse_tool_calls(text)
            return ModelResponse(content=strip_tags(text).strip(), tool_calls=calls, usage=usage)

        calls = [
            ToolCallRequest(
                tool_name=tc.function.name,
                raw_arguments=tc.function.arguments or "",
                call_id=tc.id,
            )
            for tc in (message.tool_calls or [])
        ]
        return ModelResponse(content=parse_content(message.content), tool_calls=calls, usage=usage)

    @staticmethod
    def _usage(response: Any) -> Optional[dict]:
        usage = getattr(response, "usage", None)
        if not usage:
            return None
        return {
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        }

    async def close(self) -> None:
        """Close the underlying OpenAI client."""
        try:
            await self._client.close()
        except Exception as e:
            logger.debug("Error closing OpenAI client: %s", e)
