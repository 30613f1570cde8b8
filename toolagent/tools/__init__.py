"""
ToolAgent Tools Package

- schema: SchemaNode, the internal argument schema
- descriptor: ToolDescriptor and Toolkit, the uniform tool interface
- local: LocalTool adapter and the local_tool decorator
- remote: RemoteToolClient for MCP tool providers
- registry: per-run ToolRegistry
"""

from .schema import SchemaNode
from .descriptor import ToolDescriptor, ToolOrigin, Toolkit
from .local import LocalTool, local_tool, resolve_arguments
from .remote import RemoteToolClient, RemoteTool, normalize_endpoint
from .registry import ToolRegistry

__all__ = [
    "SchemaNode",
    "ToolDescriptor",
    "ToolOrigin",
    "Toolkit",
    "LocalTool",
    "local_tool",
    "resolve_arguments",
    "RemoteToolClient",
    "RemoteTool",
    "normalize_endpoint",
    "ToolRegistry",
]
