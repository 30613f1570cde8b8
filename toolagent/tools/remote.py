"""
Remote tool client over the Model Context Protocol.

Connects to an MCP server (streamable HTTP or SSE transport), discovers
its tool catalog across pagination cursors, and exposes every remote
tool as a ``ToolDescriptor``. Remote failures never escape a tool call:
they are decoded into error text for the model, the same way local tool
exceptions are.
"""

import asyncio
import json
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, AsyncIterator, Iterable, Optional

import httpx
from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client

from ..errors import ConnectError, InvalidEndpointError
from ..models import IncludeMode, RemoteServerConfig, ToolCallResult, TransportType
from .descriptor import RawArguments, Toolkit, ToolDescriptor, ToolOrigin, error_result
from .local import resolve_arguments
from .schema import EMPTY_OBJECT, SchemaNode

logger = logging.getLogger(__name__)

# Upper bound on catalog pages followed in one listing.
MAX_PAGES = 1000


def normalize_endpoint(endpoint: str) -> str:
    """
    Validate a remote endpoint URL and return its normalized form.

    A missing scheme defaults to ``https://``.

    Raises:
        InvalidEndpointError: The URL is empty, unparsable, not http(s),
            or has no host.
    """
    text = (endpoint or "").strip()
    if not text:
        raise InvalidEndpointError(str(endpoint), "endpoint is empty")
    if any(ch.isspace() for ch in text):
        raise InvalidEndpointError(endpoint, "endpoint contains whitespace")
    if "://" not in text:
        text = f"https://{text}"

    try:
        url = httpx.URL(text)
    except (httpx.InvalidURL, ValueError, TypeError) as e:
        raise InvalidEndpointError(endpoint, str(e)) from e

    if url.scheme not in ("http", "https"):
        raise InvalidEndpointError(endpoint, f"unsupported scheme '{url.scheme}'")
    if not url.host:
        raise InvalidEndpointError(endpoint, "endpoint has no host")
    return str(url)


@dataclass(frozen=True)
class RemoteTool:
    """A tool as advertised by a remote server."""

    name: str
    description: str = ""
    input_schema: dict = field(default_factory=dict)

    @classmethod
    def from_mcp(cls, tool: Any) -> "RemoteTool":
        return cls(
            name=tool.name,
            description=tool.description or "",
            input_schema=dict(tool.inputSchema or {}),
        )


@dataclass(frozen=True)
class RemoteCallResult:
    """Decoded outcome of a remote tool call."""

    is_error: bool
    text: str


def decode_call_result(result: Any) -> str:
    """Flatten MCP call content into text."""
    parts: list[str] = []
    for item in getattr(result, "content", None) or []:
        kind = getattr(item, "type", None)
        if kind == "text":
            parts.append(item.text)
        elif kind in ("image", "audio"):
            parts.append(f"[{kind}: {getattr(item, 'mimeType', 'unknown')}]")
        elif kind == "resource":
            resource = item.resource
            text = getattr(resource, "text", None)
            parts.append(text if text is not None else f"[resource: {resource.uri}]")
        elif kind == "resource_link":
            parts.append(f"[resource: {item.uri}]")
        else:
            parts.append(str(item))

    structured = getattr(result, "structuredContent", None)
    if not parts and structured is not None:
        return json.dumps(structured, ensure_ascii=False, default=str)
    return "\n".join(parts)


class RemoteToolClient:
    """
    Client for one remote tool provider.

    Use as an async context manager, or call ``connect``/``close``
    explicitly. A session owned by a collaborator (e.g. a connection pool)
    can be injected; injected sessions are never closed by this client.
    """

    def __init__(
        self,
        endpoint: str,
        headers: Optional[dict[str, str]] = None,
        transport: TransportType = TransportType.STREAMABLE_HTTP,
        timeout: float = 60.0,
        include: IncludeMode = IncludeMode.ALL,
        tool_names: Iterable[str] = (),
        name: Optional[str] = None,
        session: Optional[ClientSession] = None,
    ):
        self.endpoint = normalize_endpoint(endpoint)
        self.headers = dict(headers or {})
        self.transport = transport
        self.timeout = timeout
        self.include = include
        self.tool_names = set(tool_names)
        self.name = name or httpx.URL(self.endpoint).host
        self._session = session
        self._stack: Optional[AsyncExitStack] = None

    @classmethod
    def from_config(cls, server: RemoteServerConfig) -> "RemoteToolClient":
        return cls(
            endpoint=server.endpoint,
            headers=server.headers,
            transport=server.transport,
            timeout=server.timeout,
            include=server.include,
            tool_names=server.tool_names,
            name=server.name,
        )

    @property
    def connected(self) -> bool:
        return self._session is not None

    def for_run(self) -> "RemoteToolClient":
        """
        Client to use for one run.

        Owned sessions are never shared between runs, so an unconnected
        copy with the same settings is returned; a client holding an
        injected session is returned as-is.
        """
        if self._session is not None and self._stack is None:
            return self
        return RemoteToolClient(
            endpoint=self.endpoint,
            headers=self.headers,
            transport=self.transport,
            timeout=self.timeout,
            include=self.include,
            tool_names=self.tool_names,
            name=self.name,
        )

    async def __aenter__(self) -> "RemoteToolClient":
        return await self.connect()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connect(self) -> "RemoteToolClient":
        """
        Open the stream and initialize the MCP session.

        Raises:
            ConnectError: The server could not be reached or refused the
                handshake.
        """
        if self._session is not None:
            return self

        stack = AsyncExitStack()
        try:
            if self.transport == TransportType.SSE:
                read_stream, write_stream = await stack.enter_async_context(
                    sse_client(self.endpoint, headers=self.headers, timeout=self.timeout)
                )
            else:
                read_stream, write_stream, _ = await stack.enter_async_context(
                    streamablehttp_client(
                        self.endpoint,
                        headers=self.headers,
                        timeout=timedelta(seconds=self.timeout),
                    )
                )
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await session.initialize()
        except Exception as e:
            logger.error("Failed to connect to remote tools at %s: %s", self.endpoint, e)
            await stack.aclose()
            raise ConnectError(self.endpoint, str(e)) from e

        logger.debug("Connected to remote tools at %s (%s)", self.endpoint, self.transport.value)
        self._session = session
        self._stack = stack
        return self

    async def close(self) -> None:
        """Close an owned session; injected sessions are left alone."""
        if self._stack is None:
            return
        stack, self._stack = self._stack, None
        self._session = None
        try:
            await stack.aclose()
        except Exception as e:
            logger.debug("Error closing remote session %s: %s", self.endpoint, e)

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise ConnectError(self.endpoint, "client is not connected")
        return self._session

    async def iter_tools(self) -> AsyncIterator[RemoteTool]:
        """
        Lazily yield the remote catalog, following pagination cursors.

        Stops when the server returns no cursor, repeats a cursor, or
        ``MAX_PAGES`` is reached.
        """
        session = self._require_session()
        cursor: Optional[str] = None
        seen: set[str] = set()
        for page in range(1, MAX_PAGES + 1):
            result = await session.list_tools(cursor=cursor)
            logger.debug(
                "Remote %s: page %d with %d tools", self.name, page, len(result.tools)
            )
            for tool in result.tools:
                yield RemoteTool.from_mcp(tool)

            cursor = result.nextCursor
            if not cursor:
                return
            if cursor in seen:
                logger.warning("Remote %s repeated cursor %r, stopping", self.name, cursor)
                return
            seen.add(cursor)
        logger.warning("Remote %s: stopped listing after %d pages", self.name, MAX_PAGES)

    async def list_tools(self) -> list[RemoteTool]:
        """Whole catalog as one ordered list."""
        return [tool async for tool in self.iter_tools()]

    async def call_tool(self, name: str, arguments: dict) -> RemoteCallResult:
        """Call a remote tool; transport failures come back as error results."""
        session = self._require_session()
        try:
            result = await asyncio.wait_for(
                session.call_tool(name, arguments), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error("Remote tool '%s' timed out after %ss", name, self.timeout)
            return RemoteCallResult(is_error=True, text=f"timed out after {self.timeout}s")
        except Exception as e:
            logger.error("Remote tool '%s' call failed: %s", name, e)
            return RemoteCallResult(is_error=True, text=str(e))

        return RemoteCallResult(is_error=bool(result.isError), text=decode_call_result(result))

    def _selected(self, tools: list[RemoteTool]) -> list[RemoteTool]:
        if self.include == IncludeMode.SELECTED:
            return [t for t in tools if t.name in self.tool_names]
        if self.include == IncludeMode.EXCEPT:
            return [t for t in tools if t.name not in self.tool_names]
        return tools

    def to_descriptor(self, tool: RemoteTool) -> ToolDescriptor:
        """Wrap one remote tool; its JSON Schema becomes a SchemaNode."""
        schema = SchemaNode.from_json_schema(tool.input_schema)
        if schema.kind != "object":
            schema = EMPTY_OBJECT
        adapter = schema.adapter(f"{tool.name}_args")

        async def invoke(raw_arguments: RawArguments) -> ToolCallResult:
            arguments = resolve_arguments(tool.name, schema, raw_arguments, adapter)
            result = await self.call_tool(tool.name, arguments)
            if result.is_error:
                return error_result(tool.name, result.text)
            return ToolCallResult(tool_name=tool.name, output=result.text)

        return ToolDescriptor(
            name=tool.name,
            description=tool.description,
            schema=schema,
            origin=ToolOrigin.REMOTE,
            invoke=invoke,
        )

    async def as_toolkit(self) -> Toolkit:
        """List, filter and wrap the remote catalog."""
        tools = self._selected(await self.list_tools())
        logger.info("Remote %s: %d tools available", self.name, len(tools))
        return Toolkit(name=self.name, tools=[self.to_descriptor(t) for t in tools])
