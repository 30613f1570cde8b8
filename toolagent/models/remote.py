"""
Data models for remote tool provider configuration.

Describes the MCP servers an agent may discover tools from and which
of their tools are exposed to the model.
"""

from dataclasses import dataclass, field
from enum import Enum


class TransportType(Enum):
    """Supported MCP client transports."""

    STREAMABLE_HTTP = "streamable_http"
    SSE = "sse"


class IncludeMode(Enum):
    """Which remote tools are exposed to the model."""

    ALL = "all"
    SELECTED = "selected"
    EXCEPT = "except"


@dataclass
class RemoteServerConfig:
    """Connection and filtering settings for one remote tool provider."""

    name: str
    endpoint: str
    transport: TransportType = TransportType.STREAMABLE_HTTP
    headers: dict[str, str] = field(default_factory=dict)
    include: IncludeMode = IncludeMode.ALL
    tool_names: list[str] = field(default_factory=list)
    timeout: float = 60.0  # Per-call timeout in seconds
