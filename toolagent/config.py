"""
Configuration management for ToolAgent.

Loads environment configuration with sensible defaults for local
development. The YAML application config (see ``config_loader``) takes
precedence where both define a value.
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class ModelEnvConfig:
    """Configuration for the chat model endpoint."""
    base_url: str = os.getenv("TOOLAGENT_BASE_URL", "http://localhost:8001/v1")
    model: str = os.getenv("TOOLAGENT_MODEL", "gpt-4o-mini")
    api_key: str = os.getenv("OPENAI_API_KEY", "")
    temperature: float = float(os.getenv("TOOLAGENT_TEMPERATURE", "0.7"))
    max_tokens: int = int(os.getenv("TOOLAGENT_MAX_TOKENS", "2048"))
    # "native" (OpenAI tools parameter) or "xml" (Qwen3 <tool_call> tags)
    tool_call_format: str = os.getenv("TOOLAGENT_TOOL_CALL_FORMAT", "native")


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """
    public_key: str = os.getenv("LANGFUSE_PUBLIC_KEY", "")
    secret_key: str = os.getenv("LANGFUSE_SECRET_KEY", "")
    host: str = os.getenv("LANGFUSE_HOST", "")
    debug: bool = os.getenv("LANGFUSE_DEBUG", "false").lower() == "true"

    @property
    def enabled(self) -> bool:
        """Auto-enable when both keys are configured."""
        return bool(self.public_key and self.secret_key)


@dataclass
class Config:
    """Main configuration container."""
    model: ModelEnvConfig
    langfuse: LangfuseConfig


def get_config() -> Config:
    """Get the application configuration."""
    return Config(
        model=ModelEnvConfig(),
        langfuse=LangfuseConfig(),
    )


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the standard ToolAgent format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# Global config instance
config = get_config()
