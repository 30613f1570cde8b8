"""
Unit tests for the per-run Tool Registry.
"""

import pytest

from toolagent.errors import DuplicateToolNameError, RegistryError
from toolagent.orchestration.structured_output import FINAL_ANSWER_TOOL_NAME
from toolagent.models import ToolCallResult
from toolagent.tools import (
    LocalTool,
    SchemaNode,
    ToolDescriptor,
    Toolkit,
    ToolOrigin,
    ToolRegistry,
)
from toolagent.tools.schema import EMPTY_OBJECT


def _remote(name: str) -> ToolDescriptor:
    async def invoke(raw_arguments):
        return ToolCallResult(tool_name=name, output="remote")

    return ToolDescriptor(
        name=name,
        description=f"Remote {name}",
        schema=EMPTY_OBJECT,
        origin=ToolOrigin.REMOTE,
        invoke=invoke,
    )


def _lookup_tool() -> LocalTool:
    def lookup(query: str) -> str:
        return query

    return LocalTool("lookup", "Local lookup", lookup)


class TestToolRegistry:
    """Test the ToolRegistry class."""

    def test_local_then_remote_order(self, add_tool):
        """Local tools come first, then remote tools, each in the given order."""
        registry = ToolRegistry.build(
            local_tools=[add_tool, _lookup_tool()],
            remote_tools=[_remote("weather"), _remote("news")],
        )
        assert registry.names == ["add", "lookup", "weather", "news"]
        assert len(registry) == 4

    def test_get_tool(self, add_tool):
        """Test getting a tool by name."""
        registry = ToolRegistry.build(local_tools=[add_tool])
        descriptor = registry.get("add")
        assert descriptor is not None
        assert descriptor.origin == ToolOrigin.LOCAL
        assert "add" in registry

    def test_get_nonexistent_tool(self, add_tool):
        """Test getting a non-existent tool."""
        registry = ToolRegistry.build(local_tools=[add_tool])
        assert registry.get("nonexistent") is None

    def test_duplicate_between_local_and_remote(self):
        """A local and a remote tool with the same name cannot coexist."""
        with pytest.raises(DuplicateToolNameError) as exc_info:
            ToolRegistry.build(local_tools=[_lookup_tool()], remote_tools=[_remote("lookup")])
        assert exc_info.value.name == "lookup"

    def test_duplicate_inside_toolkit(self):
        """Toolkits are expanded before names are checked."""
        toolkit = Toolkit(name="kit", tools=[_remote("a"), _remote("a")])
        with pytest.raises(DuplicateToolNameError):
            ToolRegistry.build(remote_tools=[toolkit])

    def test_toolkit_flattened(self):
        toolkit = Toolkit(name="kit", tools=[_remote("a"), _remote("b")])
        registry = ToolRegistry.build(remote_tools=[toolkit, _remote("c")])
        assert registry.names == ["a", "b", "c"]
        assert "kit" not in registry

    def test_unsupported_source(self):
        with pytest.raises(RegistryError):
            ToolRegistry.build(local_tools=[object()])

    def test_final_answer_tool_appended(self, add_tool):
        registry = ToolRegistry.build(
            local_tools=[add_tool],
            require_structured_output=True,
            output_schema=SchemaNode.primitive("integer"),
        )
        assert registry.names == ["add", FINAL_ANSWER_TOOL_NAME]

    def test_structured_output_without_schema(self):
        with pytest.raises(RegistryError):
            ToolRegistry.build(require_structured_output=True)

    def test_reserved_name_collides(self):
        """A user tool named like the final-answer tool is a duplicate."""
        with pytest.raises(DuplicateToolNameError):
            ToolRegistry.build(
                remote_tools=[_remote(FINAL_ANSWER_TOOL_NAME)],
                require_structured_output=True,
                output_schema=SchemaNode.primitive("string"),
            )

    def test_get_tools_summary(self, add_tool):
        """Test getting tools summary for prompts."""
        registry = ToolRegistry.build(local_tools=[add_tool])
        assert registry.get_tools_summary() == "- add: Add two integers."

    def test_registries_are_independent(self, add_tool):
        """Nothing is shared between registries built for different runs."""
        first = ToolRegistry.build(local_tools=[add_tool])
        second = ToolRegistry.build(remote_tools=[_remote("weather")])
        assert first.names == ["add"]
        assert second.names == ["weather"]
