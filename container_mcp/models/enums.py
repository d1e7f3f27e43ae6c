"""Enum definitions for container lifecycle backends."""

from enum import Enum
from typing import Literal

# Stream a log line was emitted on
LogStream = Literal["stdout", "stderr"]


class BackendType(Enum):
    """Container execution backends selectable at startup."""

    DOCKER = "docker"
    SWARM = "swarm"
    KUBERNETES = "kubernetes"  # declared, not implemented


class ServiceStatus(Enum):
    """Aggregated status of a replicated service."""

    RUNNING = "running"
    STOPPED = "stopped"
    PARTIAL = "partial"
    PENDING = "pending"
