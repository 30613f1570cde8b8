"""
ToolAgent - tool-calling agent engine

This package provides:
- Per-run tool registry over local functions and remote MCP tools
- Model/tool orchestration loop with structured final answers
- OpenAI-compatible chat model client
- Window buffer conversation memory
- Runner for single items and concurrent batches
"""

from .errors import (
    AgentRunFailedError,
    ConfigurationError,
    ConnectError,
    DuplicateToolNameError,
    InvalidEndpointError,
    InvalidMaxIterationsError,
    RegistryError,
    RunCancelledError,
    ToolAgentError,
    ToolArgumentsError,
)
from .models import (
    AgentInput,
    AgentRunConfig,
    Attachment,
    Failed,
    FailureReason,
    Finished,
    MissingStructuredOutputPolicy,
    RunOutcome,
)
from .tools import LocalTool, RemoteToolClient, SchemaNode, ToolRegistry, local_tool
from .orchestration import CancellationToken, OrchestrationLoop, StructuredOutputGate
from .llm_call import ChatModel, LLMClient
from .memory import MemoryAdapter, WindowBufferMemory
from .runner import AgentRunner, run_query

__all__ = [
    "AgentRunFailedError",
    "ConfigurationError",
    "ConnectError",
    "DuplicateToolNameError",
    "InvalidEndpointError",
    "InvalidMaxIterationsError",
    "RegistryError",
    "RunCancelledError",
    "ToolAgentError",
    "ToolArgumentsError",
    "AgentInput",
    "AgentRunConfig",
    "Attachment",
    "Failed",
    "FailureReason",
    "Finished",
    "MissingStructuredOutputPolicy",
    "RunOutcome",
    "LocalTool",
    "RemoteToolClient",
    "SchemaNode",
    "ToolRegistry",
    "local_tool",
    "CancellationToken",
    "OrchestrationLoop",
    "StructuredOutputGate",
    "ChatModel",
    "LLMClient",
    "MemoryAdapter",
    "WindowBufferMemory",
    "AgentRunner",
    "run_query",
]

__version__ = "0.1.0"
