"""
Exception hierarchy for ToolAgent.

Configuration problems are raised before the first model call, argument
errors abort a run before the offending tool executes, and everything a
tool does wrong at runtime is turned into text for the model instead of
being raised (see ``toolagent.tools.local`` and ``toolagent.tools.remote``).
"""

from typing import Optional


class ToolAgentError(Exception):
    """Base class for all ToolAgent errors."""


class ConfigurationError(ToolAgentError):
    """The run is misconfigured and must not start."""


class InvalidMaxIterationsError(ConfigurationError):
    """max_iterations is below 1."""

    def __init__(self, value: int):
        self.value = value
        super().__init__(f"max_iterations must be >= 1, got {value}")


class RegistryError(ConfigurationError):
    """The tool set cannot be assembled into a registry."""


class DuplicateToolNameError(RegistryError):
    """Two tools share the same name after toolkit expansion."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Duplicate tool name '{name}': tool names must be unique across "
            "local and remote tools"
        )


class ConnectError(ToolAgentError):
    """A remote tool provider could not be reached."""

    def __init__(self, endpoint: str, message: str):
        self.endpoint = endpoint
        super().__init__(f"Cannot connect to '{endpoint}': {message}")


class InvalidEndpointError(ConnectError, ConfigurationError):
    """The remote endpoint URL is malformed."""


class ToolArgumentsError(ToolAgentError):
    """Model-provided arguments could not be mapped onto the tool schema."""

    def __init__(self, tool_name: str, raw_arguments: object, detail: Optional[str] = None):
        self.tool_name = tool_name
        self.raw_arguments = raw_arguments
        message = f"Invalid arguments for tool '{tool_name}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RunCancelledError(ToolAgentError):
    """The cancellation signal fired while the run was suspended."""


class AgentRunFailedError(ToolAgentError):
    """Raised by batch execution when per-item isolation is disabled."""

    def __init__(self, outcome):
        self.outcome = outcome
        super().__init__(
            f"Item {outcome.item_index} failed ({outcome.reason.value}): {outcome.message}"
        )
