"""
Data models for a single agent run.

Covers the run configuration, the input item, tool call requests and
results, the model response shape, and the terminal outcome.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

DEFAULT_SYSTEM_MESSAGE = "You are a helpful assistant"
DEFAULT_MAX_ITERATIONS = 10


class MissingStructuredOutputPolicy(Enum):
    """What to do when structured output is required but never submitted."""

    PERMISSIVE = "permissive"
    FAIL = "fail"


class FailureReason(Enum):
    """Why a run did not finish."""

    CANCELLED = "cancelled"
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"
    CONFIGURATION_ERROR = "configuration_error"
    INVALID_TOOL_ARGUMENTS = "invalid_tool_arguments"
    MODEL_ERROR = "model_error"
    CONNECTION_ERROR = "connection_error"
    MEMORY_ERROR = "memory_error"
    STRUCTURED_OUTPUT_MISSING = "structured_output_missing"


@dataclass(frozen=True)
class AgentRunConfig:
    """Per-run agent settings. Immutable for the duration of a run."""

    system_message: str = DEFAULT_SYSTEM_MESSAGE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    require_structured_output: bool = False
    passthrough_binary_images: bool = True
    return_intermediate_steps: bool = False
    missing_structured_output: MissingStructuredOutputPolicy = (
        MissingStructuredOutputPolicy.PERMISSIVE
    )


@dataclass(frozen=True)
class Attachment:
    """Binary data attached to an input item."""

    mime_type: str
    data: str  # base64 encoded
    file_name: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


@dataclass
class AgentInput:
    """One input item handed to the engine."""

    request_text: str
    item_index: int = 0
    session_key: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class ConversationTurn:
    """A prior turn loaded from memory."""

    role: str  # "human" or "ai"
    content: str


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the model."""

    tool_name: str
    raw_arguments: Union[str, dict] = field(default_factory=dict)
    call_id: str = ""


@dataclass(frozen=True)
class ToolCallResult:
    """Textual result of a tool call, as seen by the model."""

    tool_name: str
    output: str
    is_error: bool = False
    call_id: str = ""


@dataclass(frozen=True)
class ContentSegment:
    """One typed part of a multi-part model answer."""

    type: str
    text: Optional[str] = None
    data: Optional[dict] = None


@dataclass
class ModelResponse:
    """Normalized reply from the chat model."""

    content: Union[str, list[ContentSegment], None] = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    usage: Optional[dict] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class IntermediateStep:
    """A tool call and the observation it produced."""

    step_number: int
    action: ToolCallRequest
    observation: ToolCallResult


@dataclass
class Finished:
    """The run produced a final answer."""

    output: Any
    item_index: int = 0
    intermediate_steps: Optional[list[IntermediateStep]] = None

    @property
    def is_finished(self) -> bool:
        return True


@dataclass
class Failed:
    """The run terminated without a final answer."""

    reason: FailureReason
    message: str = ""
    item_index: int = 0
    intermediate_steps: Optional[list[IntermediateStep]] = None
    error: Optional[BaseException] = field(default=None, repr=False, compare=False)

    @property
    def is_finished(self) -> bool:
        return False


RunOutcome = Union[Finished, Failed]
