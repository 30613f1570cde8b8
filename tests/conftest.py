"""
Pytest configuration and fixtures for ToolAgent tests.
"""

import pytest
from unittest.mock import patch

from toolagent.models import ModelResponse, ToolCallRequest
from toolagent.tools import LocalTool, local_tool


class ScriptedModel:
    """Chat model that replays canned responses and records every call."""

    def __init__(self, responses, repeat_last: bool = False):
        self.responses = list(responses)
        self.repeat_last = repeat_last
        self.calls: list[dict] = []
        self.model = "scripted-model"

    async def invoke(self, messages, tools):
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools})
        if not self.responses:
            raise AssertionError("Unexpected model call")
        if self.repeat_last and len(self.responses) == 1:
            response = self.responses[0]
        else:
            response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


def tool_call_response(*calls: tuple, content=None) -> ModelResponse:
    """ModelResponse requesting (name, arguments[, call_id]) tool calls."""
    requests = []
    for index, call in enumerate(calls):
        name, arguments = call[0], call[1]
        call_id = call[2] if len(call) > 2 else f"call_{index}"
        requests.append(ToolCallRequest(tool_name=name, raw_arguments=arguments, call_id=call_id))
    return ModelResponse(content=content, tool_calls=requests)


@pytest.fixture
def scripted_model():
    """Factory for ScriptedModel instances."""
    return ScriptedModel


@pytest.fixture
def tool_calls():
    """Factory for tool-call model responses."""
    return tool_call_response


@pytest.fixture
def add_tool() -> LocalTool:
    """Local tool adding two integers."""

    @local_tool
    def add(a: int, b: int) -> int:
        """Add two integers."""
        return a + b

    return add


@pytest.fixture(autouse=True)
def no_tracing_client():
    """Keep the global Langfuse client unset unless a test installs one."""
    with patch("toolagent.tracing.client._tracing_client", None):
        yield
