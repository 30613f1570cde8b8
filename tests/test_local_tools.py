"""Tests for local tools and lenient argument resolution."""

import asyncio

import pytest

from toolagent.errors import ToolArgumentsError
from toolagent.tools import LocalTool, SchemaNode, ToolOrigin, local_tool
from toolagent.tools.local import loads_permissive, resolve_arguments


class TestLoadsPermissive:
    """Tests for permissive JSON parsing."""

    def test_plain_json(self):
        assert loads_permissive('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert loads_permissive('```json\n{"a": 1}\n```') == {"a": 1}

    def test_object_inside_prose(self):
        assert loads_permissive('Sure, here you go: {"a": 1} hope it helps') == {"a": 1}

    def test_garbage_returns_none(self):
        assert loads_permissive("no json here") is None


class TestResolveArguments:
    """Tests for resolve_arguments."""

    PAIR = SchemaNode.object_of(
        {"a": SchemaNode.primitive("integer"), "b": SchemaNode.primitive("integer")}
    )
    QUERY = SchemaNode.object_of({"query": SchemaNode.primitive("string")})

    def test_strict_json_string(self):
        assert resolve_arguments("pair", self.PAIR, '{"a": 2, "b": 3}') == {"a": 2, "b": 3}

    def test_strict_dict(self):
        assert resolve_arguments("pair", self.PAIR, {"a": "2", "b": 3}) == {"a": 2, "b": 3}

    def test_empty_arguments_become_empty_object(self):
        optional = SchemaNode.object_of({"q": SchemaNode.primitive("string")}, required=[])
        assert resolve_arguments("opt", optional, "") == {}

    def test_mismatched_object_passed_through(self):
        """An object that fails validation is still handed over as-is."""
        assert resolve_arguments("pair", self.PAIR, {"a": "x"}) == {"a": "x"}

    def test_single_field_fallback(self):
        assert resolve_arguments("search", self.QUERY, "weather in Paris") == {
            "query": "weather in Paris"
        }

    def test_unrecoverable_raises(self):
        with pytest.raises(ToolArgumentsError) as exc_info:
            resolve_arguments("pair", self.PAIR, "two and three")
        assert exc_info.value.tool_name == "pair"
        assert exc_info.value.raw_arguments == "two and three"


class TestLocalTool:
    """Tests for LocalTool invocation."""

    def test_add_returns_text(self, add_tool):
        result = asyncio.run(add_tool.invoke({"a": 2, "b": 3}))
        assert result.output == "5"
        assert result.is_error is False
        assert result.tool_name == "add"

    def test_async_function(self):
        async def greet(name: str) -> str:
            return f"hello {name}"

        tool = LocalTool("greet", "Greet someone", greet)
        result = asyncio.run(tool.invoke('{"name": "Ada"}'))
        assert result.output == "hello Ada"

    def test_structured_return_is_json(self):
        def info(key: str) -> dict:
            return {"key": key, "ok": True}

        tool = LocalTool("info", "Info", info)
        result = asyncio.run(tool.invoke({"key": "k"}))
        assert result.output == '{"key": "k", "ok": true}'

    def test_function_exception_becomes_error_result(self):
        def broken(query: str) -> str:
            raise ValueError("bad query")

        tool = LocalTool("broken", "Broken", broken)
        result = asyncio.run(tool.invoke({"query": "x"}))
        assert result.is_error is True
        assert result.output == "Tool 'broken' execution error: bad query"

    def test_bad_arguments_raise_before_execution(self):
        calls = []

        def pair(a: int, b: int) -> int:
            calls.append(1)
            return a + b

        tool = LocalTool("pair", "Pair", pair)
        with pytest.raises(ToolArgumentsError):
            asyncio.run(tool.invoke("nonsense"))
        assert calls == []

    def test_unknown_arguments_dropped(self, add_tool):
        result = asyncio.run(add_tool.invoke({"a": 1, "b": 1, "c": 9}))
        assert result.output == "2"

    def test_custom_formatter(self):
        tool = LocalTool("double", "Double", lambda x: x * 2, schema=SchemaNode.object_of(
            {"x": SchemaNode.primitive("integer")}
        ), formatter=lambda value: f"= {value}")
        result = asyncio.run(tool.invoke({"x": 4}))
        assert result.output == "= 8"

    def test_descriptor(self, add_tool):
        descriptor = add_tool.to_descriptor()
        assert descriptor.name == "add"
        assert descriptor.origin == ToolOrigin.LOCAL
        assert descriptor.schema == add_tool.schema


class TestLocalToolDecorator:
    """Tests for the local_tool decorator."""

    def test_bare_decorator_uses_function_metadata(self):
        @local_tool
        def lookup(term: str) -> str:
            """Look up a term.

            Longer explanation that is not part of the description.
            """
            return term

        assert isinstance(lookup, LocalTool)
        assert lookup.name == "lookup"
        assert lookup.description == "Look up a term."
        assert lookup("x") == "x"

    def test_decorator_with_options(self):
        @local_tool(name="find", description="Find things")
        def lookup(term: str) -> str:
            return term

        assert lookup.name == "find"
        assert lookup.description == "Find things"

    def test_default_parameters_are_optional(self):
        @local_tool
        def search(query: str, limit: int = 5) -> str:
            return f"{query}:{limit}"

        assert search.schema.required == ("query",)
        result = asyncio.run(search.invoke({"query": "x"}))
        assert result.output == "x:5"
