"""Tests for the MCP remote tool client, using a mocked ClientSession."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from toolagent.errors import (
    ConfigurationError,
    ConnectError,
    InvalidEndpointError,
    ToolArgumentsError,
)
from toolagent.models import IncludeMode, RemoteServerConfig, TransportType
from toolagent.tools import RemoteToolClient, ToolOrigin, normalize_endpoint
from toolagent.tools.remote import RemoteTool, decode_call_result

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {"query": {"type": "string"}},
    "required": ["query"],
}


def _tool(name: str, schema=None):
    return SimpleNamespace(name=name, description=f"{name} tool", inputSchema=schema or {"type": "object"})


def _page(tools, next_cursor=None):
    return SimpleNamespace(tools=tools, nextCursor=next_cursor)


def _text_result(text: str, is_error: bool = False):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        structuredContent=None,
        isError=is_error,
    )


def _session(pages=None, call_result=None):
    session = MagicMock()
    session.list_tools = AsyncMock(side_effect=list(pages or [_page([])]))
    session.call_tool = AsyncMock(return_value=call_result)
    return session


class TestNormalizeEndpoint:
    """Tests for endpoint validation."""

    def test_keeps_valid_url(self):
        assert normalize_endpoint("http://localhost:8000/mcp") == "http://localhost:8000/mcp"

    def test_adds_https_scheme(self):
        assert normalize_endpoint("tools.example.com/mcp") == "https://tools.example.com/mcp"

    def test_strips_whitespace(self):
        assert normalize_endpoint("  https://tools.example.com/mcp ") == "https://tools.example.com/mcp"

    @pytest.mark.parametrize(
        "endpoint",
        ["", "   ", "ftp://tools.example.com", "http://bad host/mcp", "https://"],
    )
    def test_rejects_invalid(self, endpoint):
        with pytest.raises(InvalidEndpointError):
            normalize_endpoint(endpoint)

    def test_invalid_endpoint_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            RemoteToolClient("ftp://tools.example.com")


class TestListTools:
    """Tests for catalog discovery."""

    def test_single_page(self):
        session = _session([_page([_tool("a"), _tool("b")])])
        client = RemoteToolClient("http://localhost/mcp", session=session)
        tools = asyncio.run(client.list_tools())
        assert [t.name for t in tools] == ["a", "b"]
        session.list_tools.assert_awaited_once_with(cursor=None)

    def test_paginated_catalog_matches_single_page(self):
        """Following cursors yields the same ordered list as one big page."""
        paged = _session(
            [
                _page([_tool("a"), _tool("b")], "c1"),
                _page([_tool("c")], "c2"),
                _page([_tool("d")]),
            ]
        )
        single = _session([_page([_tool("a"), _tool("b"), _tool("c"), _tool("d")])])

        paged_names = [t.name for t in asyncio.run(RemoteToolClient("http://h/mcp", session=paged).list_tools())]
        single_names = [t.name for t in asyncio.run(RemoteToolClient("http://h/mcp", session=single).list_tools())]

        assert paged_names == single_names == ["a", "b", "c", "d"]
        cursors = [c.kwargs["cursor"] for c in paged.list_tools.await_args_list]
        assert cursors == [None, "c1", "c2"]

    def test_repeated_cursor_stops_listing(self):
        session = _session(
            [
                _page([_tool("a")], "same"),
                _page([_tool("b")], "same"),
                _page([_tool("never")]),
            ]
        )
        tools = asyncio.run(RemoteToolClient("http://h/mcp", session=session).list_tools())
        assert [t.name for t in tools] == ["a", "b"]
        assert session.list_tools.await_count == 2

    def test_not_connected(self):
        client = RemoteToolClient("http://h/mcp")
        assert client.connected is False
        with pytest.raises(ConnectError):
            asyncio.run(client.list_tools())


class TestIncludeModes:
    """Tests for remote tool filtering."""

    def _names(self, include, tool_names=()):
        session = _session([_page([_tool("a"), _tool("b"), _tool("c")])])
        client = RemoteToolClient(
            "http://h/mcp", include=include, tool_names=tool_names, name="kit", session=session
        )
        toolkit = asyncio.run(client.as_toolkit())
        assert toolkit.name == "kit"
        return [t.name for t in toolkit.get_tools()]

    def test_all(self):
        assert self._names(IncludeMode.ALL) == ["a", "b", "c"]

    def test_selected(self):
        assert self._names(IncludeMode.SELECTED, ["c", "a"]) == ["a", "c"]

    def test_except(self):
        assert self._names(IncludeMode.EXCEPT, ["b"]) == ["a", "c"]


class TestCallTool:
    """Tests for remote tool invocation."""

    def test_descriptor_invokes_session(self):
        session = _session(call_result=_text_result("sunny"))
        client = RemoteToolClient("http://h/mcp", session=session)
        descriptor = client.to_descriptor(RemoteTool("weather", "Weather", SEARCH_SCHEMA))
        assert descriptor.origin == ToolOrigin.REMOTE

        result = asyncio.run(descriptor.invoke('{"query": "Paris"}'))
        assert result.output == "sunny"
        assert result.is_error is False
        session.call_tool.assert_awaited_once_with("weather", {"query": "Paris"})

    def test_single_field_fallback_for_remote(self):
        session = _session(call_result=_text_result("ok"))
        client = RemoteToolClient("http://h/mcp", session=session)
        descriptor = client.to_descriptor(RemoteTool("search", "Search", SEARCH_SCHEMA))
        asyncio.run(descriptor.invoke("weather in Paris"))
        session.call_tool.assert_awaited_once_with("search", {"query": "weather in Paris"})

    def test_remote_error_becomes_error_result(self):
        session = _session(call_result=_text_result("quota exceeded", is_error=True))
        client = RemoteToolClient("http://h/mcp", session=session)
        descriptor = client.to_descriptor(RemoteTool("search", "Search", SEARCH_SCHEMA))
        result = asyncio.run(descriptor.invoke({"query": "x"}))
        assert result.is_error is True
        assert result.output == "Tool 'search' execution error: quota exceeded"

    def test_transport_exception_becomes_error_result(self):
        session = _session()
        session.call_tool = AsyncMock(side_effect=RuntimeError("connection reset"))
        client = RemoteToolClient("http://h/mcp", session=session)
        result = asyncio.run(client.call_tool("search", {}))
        assert result.is_error is True
        assert result.text == "connection reset"

    def test_timeout(self):
        async def slow(name, arguments):
            await asyncio.sleep(1)

        session = _session()
        session.call_tool = AsyncMock(side_effect=slow)
        client = RemoteToolClient("http://h/mcp", timeout=0.01, session=session)
        result = asyncio.run(client.call_tool("search", {}))
        assert result.is_error is True
        assert "timed out" in result.text

    def test_unrecoverable_arguments_raise(self):
        schema = {
            "type": "object",
            "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}},
            "required": ["a", "b"],
        }
        session = _session()
        client = RemoteToolClient("http://h/mcp", session=session)
        descriptor = client.to_descriptor(RemoteTool("pair", "Pair", schema))
        with pytest.raises(ToolArgumentsError):
            asyncio.run(descriptor.invoke("one and two"))
        session.call_tool.assert_not_awaited()


class TestDecodeCallResult:
    """Tests for decode_call_result."""

    def test_joins_text_parts(self):
        result = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="a"), SimpleNamespace(type="text", text="b")],
            structuredContent=None,
        )
        assert decode_call_result(result) == "a\nb"

    def test_image_placeholder(self):
        result = SimpleNamespace(
            content=[SimpleNamespace(type="image", mimeType="image/png", data="AAAA")],
            structuredContent=None,
        )
        assert decode_call_result(result) == "[image: image/png]"

    def test_structured_content_when_no_parts(self):
        result = SimpleNamespace(content=[], structuredContent={"temp": 21})
        assert decode_call_result(result) == '{"temp": 21}'


class TestClientLifecycle:
    """Tests for per-run client handling."""

    def test_from_config(self):
        server = RemoteServerConfig(
            name="search",
            endpoint="search.example.com/mcp",
            transport=TransportType.SSE,
            headers={"Authorization": "Bearer t"},
            include=IncludeMode.SELECTED,
            tool_names=["web"],
            timeout=5.0,
        )
        client = RemoteToolClient.from_config(server)
        assert client.endpoint == "https://search.example.com/mcp"
        assert client.transport == TransportType.SSE
        assert client.headers == {"Authorization": "Bearer t"}
        assert client.tool_names == {"web"}
        assert client.name == "search"

    def test_name_defaults_to_host(self):
        assert RemoteToolClient("http://tools.local:9000/mcp").name == "tools.local"

    def test_for_run_copies_owned_client(self):
        client = RemoteToolClient("http://h/mcp", timeout=3.0)
        copy = client.for_run()
        assert copy is not client
        assert copy.endpoint == client.endpoint
        assert copy.timeout == 3.0
        assert copy.connected is False

    def test_for_run_shares_injected_session(self):
        client = RemoteToolClient("http://h/mcp", session=_session())
        assert client.for_run() is client

    def test_close_leaves_injected_session(self):
        client = RemoteToolClient("http://h/mcp", session=_session())
        asyncio.run(client.close())
        assert client.connected is True
