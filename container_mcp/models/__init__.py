"""Data models for Container MCP."""

from .container import (  # noqa: F401
    ContainerInfo,
    DeployConfig,
    ListFilter,
    LogEntry,
    PortBinding,
    VolumeBinding,
)
from .enums import BackendType, ServiceStatus  # noqa: F401

__all__ = [
    # Container models
    "ContainerInfo",
    "DeployConfig",
    "ListFilter",
    "LogEntry",
    "PortBinding",
    "VolumeBinding",
    # Enums
    "BackendType",
    "ServiceStatus",
]
