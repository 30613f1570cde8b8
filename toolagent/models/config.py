"""
Configuration models for ToolAgent.

Defines dataclasses for the unified YAML configuration file.
"""

from dataclasses import dataclass, field

from .remote import RemoteServerConfig
from .run import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_SYSTEM_MESSAGE,
    AgentRunConfig,
    MissingStructuredOutputPolicy,
)


@dataclass
class ModelConfig:
    """Configuration for the chat model endpoint."""
    base_url: str = "http://localhost:8001/v1"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    temperature: float = 0.7
    max_tokens: int = 2048
    tool_call_format: str = "native"  # "native" or "xml"


@dataclass
class AgentConfig:
    """Default settings applied to every run."""
    system_message: str = DEFAULT_SYSTEM_MESSAGE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    return_intermediate_steps: bool = False
    passthrough_binary_images: bool = True
    missing_structured_output: MissingStructuredOutputPolicy = (
        MissingStructuredOutputPolicy.PERMISSIVE
    )

    def to_run_config(self, require_structured_output: bool = False) -> AgentRunConfig:
        """Build the immutable per-run configuration."""
        return AgentRunConfig(
            system_message=self.system_message,
            max_iterations=self.max_iterations,
            require_structured_output=require_structured_output,
            passthrough_binary_images=self.passthrough_binary_images,
            return_intermediate_steps=self.return_intermediate_steps,
            missing_structured_output=self.missing_structured_output,
        )


@dataclass
class MemoryConfig:
    """Configuration for the window buffer memory."""
    enabled: bool = False
    context_window_length: int = 5


@dataclass
class BatchConfig:
    """Configuration for batch execution of input items."""
    batch_size: int = 1
    delay_between_batches: float = 0.0
    continue_on_fail: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """
    public_key: str = ""
    secret_key: str = ""
    host: str = "https://cloud.langfuse.com"
    debug: bool = False

    @property
    def is_configured(self) -> bool:
        """Check if Langfuse is configured (both keys present)."""
        return bool(self.public_key and self.secret_key)


@dataclass
class AppConfig:
    """
    Unified application configuration container.

    Holds all configuration sections loaded from config/config.yaml.
    """
    version: str = "1.0"
    model: ModelConfig = field(default_factory=ModelConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)
    remote_servers: dict[str, RemoteServerConfig] = field(default_factory=dict)

    @property
    def log_level(self) -> str:
        """Shortcut for logging.level."""
        return self.logging.level
