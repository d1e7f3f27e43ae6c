"""Configuration management for Container MCP."""

import asyncio
import os
import re
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

logger = structlog.get_logger()

DEFAULT_CONFIG_FILE = "config/container-mcp.yml"

# YAML "docker:" section keys -> config attributes
_DOCKER_SECTION_FIELDS = {
    "socket": "docker_socket",
    "host": "docker_host",
    "client_timeout": "docker_client_timeout",
    "stop_timeout": "stop_timeout",
}

_ALLOWED_ENV_VARS = {
    "HOME",
    "USER",
    "XDG_CONFIG_HOME",
    "CONTAINER_BACKEND",
    "CONTAINER_MCP_CONFIG",
    "DOCKER_SOCKET",
    "DOCKER_HOST",
    "FASTMCP_HOST",
    "FASTMCP_PORT",
    "LOG_LEVEL",
}


class ServerConfig(BaseModel):
    """MCP server configuration."""

    host: str = Field(default="127.0.0.1", alias="FASTMCP_HOST")
    port: int = Field(default=8000, alias="FASTMCP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {"populate_by_name": True}


class ContainerMCPConfig(BaseSettings):
    """Main configuration, built once at startup and handed to the backend factory."""

    backend: str = Field(default="docker", alias="CONTAINER_BACKEND")
    docker_socket: str = Field(default="/var/run/docker.sock", alias="DOCKER_SOCKET")
    docker_host: str | None = Field(default=None, alias="DOCKER_HOST")
    docker_client_timeout: int = Field(
        default=30, alias="DOCKER_CLIENT_TIMEOUT", description="Docker SDK client timeout in seconds"
    )
    stop_timeout: int = Field(
        default=10, alias="CONTAINER_STOP_TIMEOUT", description="Default stop grace period in seconds"
    )
    server: ServerConfig = Field(default_factory=ServerConfig)
    config_file: str = Field(default=DEFAULT_CONFIG_FILE, alias="CONTAINER_MCP_CONFIG")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    @property
    def docker_base_url(self) -> str:
        """Daemon URL: explicit DOCKER_HOST wins over the socket path."""
        if self.docker_host:
            return self.docker_host
        return f"unix://{self.docker_socket}"


def load_config(config_path: str | None = None) -> ContainerMCPConfig:
    """Load configuration from multiple sources (synchronous interface).

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Loaded configuration

    Note:
        For async code, use load_config_async() instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(load_config_async(config_path))
    raise RuntimeError(
        "load_config() cannot be called from within an async context. "
        "Use 'await load_config_async()' instead."
    )


async def load_config_async(config_path: str | None = None) -> ContainerMCPConfig:
    """Load configuration: defaults, then YAML file, then environment variables.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Loaded configuration
    """
    load_dotenv()

    config = ContainerMCPConfig()

    project_config_path = Path(
        config_path or os.getenv("CONTAINER_MCP_CONFIG", DEFAULT_CONFIG_FILE)
    )
    await _load_config_file(config, project_config_path)
    config.config_file = str(project_config_path)

    # Environment variables have the highest priority
    _apply_env_overrides(config)

    logger.debug(
        "Configuration loaded",
        config_file=config.config_file,
        backend=config.backend,
        docker_url=config.docker_base_url,
    )
    return config


async def _load_config_file(config: ContainerMCPConfig, config_path: Path) -> None:
    """Load and apply configuration from a YAML file."""
    if not config_path.exists():
        return

    yaml_config = await _load_yaml_config(config_path)
    _apply_backend_config(config, yaml_config)
    _apply_docker_config(config, yaml_config)
    _apply_server_config(config, yaml_config)


def _apply_backend_config(config: ContainerMCPConfig, yaml_config: dict[str, Any]) -> None:
    if backend := yaml_config.get("backend"):
        config.backend = str(backend)


def _apply_docker_config(config: ContainerMCPConfig, yaml_config: dict[str, Any]) -> None:
    """Apply docker daemon settings from YAML data."""
    docker_section = yaml_config.get("docker") or {}
    if not isinstance(docker_section, dict):
        raise ConfigurationError("'docker' section must be a mapping")
    for key, value in docker_section.items():
        if attr := _DOCKER_SECTION_FIELDS.get(key):
            setattr(config, attr, value)
        else:
            logger.warning("Unknown docker config key ignored", key=key)


def _apply_server_config(config: ContainerMCPConfig, yaml_config: dict[str, Any]) -> None:
    """Apply server configuration from YAML data."""
    server_section = yaml_config.get("server") or {}
    if not isinstance(server_section, dict):
        raise ConfigurationError("'server' section must be a mapping")
    for key, value in server_section.items():
        if hasattr(config.server, key):
            setattr(config.server, key, value)


def _apply_env_overrides(config: ContainerMCPConfig) -> None:
    """Apply environment variable overrides."""
    if backend := os.getenv("CONTAINER_BACKEND"):
        config.backend = backend
    if socket := os.getenv("DOCKER_SOCKET"):
        config.docker_socket = socket
    if docker_host := os.getenv("DOCKER_HOST"):
        config.docker_host = docker_host
    if timeout_env := os.getenv("DOCKER_CLIENT_TIMEOUT"):
        config.docker_client_timeout = _parse_int_env("DOCKER_CLIENT_TIMEOUT", timeout_env)
    if stop_env := os.getenv("CONTAINER_STOP_TIMEOUT"):
        config.stop_timeout = _parse_int_env("CONTAINER_STOP_TIMEOUT", stop_env)
    if host := os.getenv("FASTMCP_HOST"):
        config.server.host = host
    if port_env := os.getenv("FASTMCP_PORT"):
        config.server.port = _parse_int_env("FASTMCP_PORT", port_env)
    if log_level := os.getenv("LOG_LEVEL"):
        config.server.log_level = log_level


def _parse_int_env(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


async def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load YAML configuration file."""
    try:
        content = await asyncio.to_thread(config_path.read_text)
        loaded = yaml.safe_load(_expand_env_vars(content))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config from {config_path}: {e}") from e

    # yaml.safe_load can return None, str, list, etc.
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return loaded


def _expand_env_vars(content: str) -> str:
    """Expand ${VAR} and $VAR references, restricted to an allowlist."""

    def replace_if_allowed(match: re.Match) -> str:
        var_name = match.group(1) or match.group(2)
        original_pattern = match.group(0)
        if var_name in _ALLOWED_ENV_VARS:
            return os.getenv(var_name, original_pattern)
        logger.warning(
            "Environment variable not in allowlist, skipping expansion",
            variable=var_name,
        )
        return original_pattern

    return re.sub(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)", replace_if_allowed, content)
