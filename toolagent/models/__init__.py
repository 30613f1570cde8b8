"""
Data models for ToolAgent.
"""

from .remote import (
    TransportType,
    IncludeMode,
    RemoteServerConfig,
)
from .config import (
    ModelConfig,
    AgentConfig,
    MemoryConfig,
    BatchConfig,
    LoggingConfig,
    LangfuseConfig,
    AppConfig,
)
from .run import (
    AgentInput,
    AgentRunConfig,
    Attachment,
    ContentSegment,
    ConversationTurn,
    Failed,
    FailureReason,
    Finished,
    IntermediateStep,
    MissingStructuredOutputPolicy,
    ModelResponse,
    RunOutcome,
    ToolCallRequest,
    ToolCallResult,
)

__all__ = [
    # Remote tool models
    "TransportType",
    "IncludeMode",
    "RemoteServerConfig",
    # Config models
    "ModelConfig",
    "AgentConfig",
    "MemoryConfig",
    "BatchConfig",
    "LoggingConfig",
    "LangfuseConfig",
    "AppConfig",
    # Run models
    "AgentInput",
    "AgentRunConfig",
    "Attachment",
    "ContentSegment",
    "ConversationTurn",
    "Failed",
    "FailureReason",
    "Finished",
    "IntermediateStep",
    "MissingStructuredOutputPolicy",
    "ModelResponse",
    "RunOutcome",
    "ToolCallRequest",
    "ToolCallResult",
]
