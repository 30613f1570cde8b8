"""
YAML configuration for agent runs.

``${VAR}`` and ``${VAR:-default}`` references anywhere in the file are
expanded from the environment before the sections are parsed, so secrets
such as API keys and Langfuse credentials can stay out of the file.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .models import (
    AgentConfig,
    AppConfig,
    BatchConfig,
    IncludeMode,
    LangfuseConfig,
    LoggingConfig,
    MemoryConfig,
    ModelConfig,
    RemoteServerConfig,
    TransportType,
)
from .models.run import MissingStructuredOutputPolicy

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "TOOLAGENT_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"

# ${NAME} or ${NAME:-fallback}
_ENV_REFERENCE = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

_app_config: Optional[AppConfig] = None


def resolve_env_vars(value: str) -> str:
    """Expand ``${VAR}`` / ``${VAR:-default}``; unset without default becomes ''."""
    return _ENV_REFERENCE.sub(
        lambda m: os.environ.get(m.group(1), m.group(2) or ""),
        value,
    )


def _expand(node: Any) -> Any:
    if isinstance(node, str):
        return resolve_env_vars(node)
    if isinstance(node, list):
        return [_expand(item) for item in node]
    if isinstance(node, dict):
        return {key: _expand(item) for key, item in node.items()}
    return node


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _parse_enum(enum_cls, value: Any, section: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Invalid {section}: '{value}' (expected one of: {allowed})")


def _parse_model_config(data: dict) -> ModelConfig:
    """Parse model configuration from dict."""
    tool_call_format = data.get("tool_call_format", "native")
    if tool_call_format not in ("native", "xml"):
        raise ValueError(f"Invalid model.tool_call_format: '{tool_call_format}'")
    return ModelConfig(
        base_url=data.get("base_url", "http://localhost:8001/v1"),
        model=data.get("model", "gpt-4o-mini"),
        api_key=data.get("api_key", ""),
        temperature=float(data.get("temperature", 0.7)),
        max_tokens=int(data.get("max_tokens", 2048)),
        tool_call_format=tool_call_format,
    )


def _parse_agent_config(data: dict) -> AgentConfig:
    """Parse agent defaults from dict."""
    defaults = AgentConfig()
    return AgentConfig(
        system_message=data.get("system_message", defaults.system_message),
        max_iterations=int(data.get("max_iterations", defaults.max_iterations)),
        return_intermediate_steps=_as_bool(data.get("return_intermediate_steps"), False),
        passthrough_binary_images=_as_bool(data.get("passthrough_binary_images"), True),
        missing_structured_output=_parse_enum(
            MissingStructuredOutputPolicy,
            data.get("missing_structured_output", "permissive"),
            "agent.missing_structured_output",
        ),
    )


def _parse_memory_config(data: dict) -> MemoryConfig:
    """Parse memory configuration from dict."""
    return MemoryConfig(
        enabled=_as_bool(data.get("enabled"), False),
        context_window_length=int(data.get("context_window_length", 5)),
    )


def _parse_batch_config(data: dict) -> BatchConfig:
    """Parse batch execution configuration from dict."""
    return BatchConfig(
        batch_size=int(data.get("batch_size", 1)),
        delay_between_batches=float(data.get("delay_between_batches", 0.0)),
        continue_on_fail=_as_bool(data.get("continue_on_fail"), True),
    )


def _parse_logging_config(data: dict) -> LoggingConfig:
    """Parse logging configuration from dict."""
    return LoggingConfig(
        level=data.get("level", "INFO"),
    )


def _parse_langfuse_config(data: dict) -> LangfuseConfig:
    """Parse Langfuse configuration from dict."""
    return LangfuseConfig(
        public_key=data.get("public_key", ""),
        secret_key=data.get("secret_key", ""),
        host=data.get("host", "https://cloud.langfuse.com"),
        debug=_as_bool(data.get("debug"), False),
    )


def _parse_remote_server(name: str, data: dict) -> RemoteServerConfig:
    """Parse a single remote tool server from dict."""
    endpoint = data.get("endpoint", "")
    if not endpoint:
        raise ValueError(f"Remote server '{name}': missing endpoint")
    return RemoteServerConfig(
        name=name,
        endpoint=endpoint,
        transport=_parse_enum(
            TransportType, data.get("transport", "streamable_http"), f"{name}.transport"
        ),
        headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
        include=_parse_enum(IncludeMode, data.get("include", "all"), f"{name}.include"),
        tool_names=list(data.get("tools") or []),
        timeout=float(data.get("timeout", 60.0)),
    )


def _parse_remote_servers(data: dict) -> dict[str, RemoteServerConfig]:
    """Parse remote_tools.servers from dict."""
    servers = {}
    for name, server_data in (data.get("servers") or {}).items():
        try:
            servers[name] = _parse_remote_server(name, server_data or {})
            logger.debug("Loaded remote server %s -> %s", name, servers[name].endpoint)
        except Exception as e:
            logger.error("Failed to parse remote server %s: %s", name, e)
            raise ValueError(f"Invalid remote server configuration for '{name}': {e}") from e
    return servers


def validate_app_config(app_config: AppConfig) -> list[str]:
    """
    Validate an application configuration.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    if app_config.agent.max_iterations < 1:
        errors.append("agent.max_iterations must be >= 1")
    if app_config.memory.context_window_length < 1:
        errors.append("memory.context_window_length must be >= 1")
    if app_config.batch.batch_size < 1:
        errors.append("batch.batch_size must be >= 1")
    for name, server in app_config.remote_servers.items():
        if server.include != IncludeMode.ALL and not server.tool_names:
            errors.append(f"Remote server '{name}': include={server.include.value} needs tools")
    return errors


def _read_yaml(config_path: Path) -> dict:
    if not config_path.exists():
        raise FileNotFoundError(
            f"No configuration at {config_path}; copy config/config.yaml.template "
            f"there or point {CONFIG_PATH_ENV} at another file"
        )
    with config_path.open() as f:
        raw = yaml.safe_load(f)
    if raw is None:
        raise ValueError(f"Configuration file {config_path} is empty")
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must hold a mapping")
    return _expand(raw)


def load_app_config(path: Optional[str] = None, reload: bool = False) -> AppConfig:
    """
    Load and cache the application configuration.

    Args:
        path: YAML file to read. Defaults to $TOOLAGENT_CONFIG_PATH, then
            config/config.yaml next to the package.
        reload: Re-read the file even when a configuration is cached.

    Raises:
        FileNotFoundError: The file does not exist.
        ValueError: The file is empty or a section is invalid.
    """
    global _app_config

    if _app_config is not None and not reload:
        return _app_config

    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    logger.info("Loading configuration from %s", config_path)
    raw = _read_yaml(config_path)

    def section(key: str) -> dict:
        return raw.get(key) or {}

    app_config = AppConfig(
        version=str(raw.get("version", "1.0")),
        model=_parse_model_config(section("model")),
        agent=_parse_agent_config(section("agent")),
        memory=_parse_memory_config(section("memory")),
        batch=_parse_batch_config(section("batch")),
        logging=_parse_logging_config(section("logging")),
        langfuse=_parse_langfuse_config(section("langfuse")),
        remote_servers=_parse_remote_servers(section("remote_tools")),
    )

    for problem in validate_app_config(app_config):
        logger.warning("Config validation warning: %s", problem)

    _app_config = app_config
    logger.debug(
        "Configuration %s loaded with remote servers %s",
        app_config.version,
        sorted(app_config.remote_servers),
    )
    return app_config


def reset_config_cache() -> None:
    """Forget the cached configuration."""
    global _app_config
    _app_config = None
