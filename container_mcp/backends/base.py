"""Backend contract shared by every container execution backend."""

from __future__ import annotations

import random
import string
from abc import ABC, abstractmethod
from typing import NoReturn

import structlog

from ..core.config_loader import ContainerMCPConfig
from ..core.docker_client import DockerClientManager
from ..core.exceptions import BackendError, ValidationError
from ..models.container import ContainerInfo, DeployConfig, LogEntry, PortBinding

NAME_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
NAME_SUFFIX_LENGTH = 6
DEFAULT_STOP_TIMEOUT = 10


class ContainerBackend(ABC):
    """Lifecycle operations every backend must provide.

    Implementations are stateless: each call queries or mutates the daemon
    and derives its answer from the daemon's current state.
    """

    name: str = "base"
    name_prefix: str = "container"

    def __init__(self, clients: DockerClientManager, config: ContainerMCPConfig | None = None):
        self.clients = clients
        self.stop_timeout = config.stop_timeout if config is not None else DEFAULT_STOP_TIMEOUT
        self.logger = structlog.get_logger().bind(backend=self.name)

    @abstractmethod
    async def start(self, id: str) -> None:
        """Start a stopped container/service."""

    @abstractmethod
    async def stop(self, id: str, timeout: int | None = None) -> None:
        """Stop a running container/service.

        Args:
            id: Container/service identifier
            timeout: Seconds to wait before the daemon forcefully terminates
        """

    @abstractmethod
    async def deploy(self, config: DeployConfig) -> str:
        """Deploy from a validated config and return the new backend id."""

    @abstractmethod
    async def list(self) -> list[ContainerInfo]:
        """List every managed container/service, stopped ones included."""

    @abstractmethod
    async def remove(self, id: str) -> None:
        """Remove a container/service."""

    @abstractmethod
    async def logs(self, id: str, since: str | None = None, tail: int | None = None) -> list[LogEntry]:
        """Fetch parsed logs.

        Args:
            id: Container/service identifier
            since: Only logs since this timestamp or duration
            tail: Number of trailing lines to return
        """

    def validate_config(self, config: DeployConfig) -> None:
        """Checks on top of model validation, run before any daemon call.

        Raises:
            ValidationError: If two port bindings share a host port.
        """
        if config.ports:
            self._validate_port_uniqueness(config.ports)

    @staticmethod
    def _validate_port_uniqueness(ports: list[PortBinding]) -> None:
        host_ports = [port.host_port for port in ports]
        if len(set(host_ports)) != len(host_ports):
            raise ValidationError("Duplicate host ports detected")

    def generate_name(self, prefix: str | None = None) -> str:
        """Default resource name, e.g. ``container-k3x9a1``. Uniqueness is left to the daemon."""
        suffix = "".join(random.choices(NAME_SUFFIX_ALPHABET, k=NAME_SUFFIX_LENGTH))
        return f"{prefix or self.name_prefix}-{suffix}"

    def handle_error(self, error: Exception, context: str = "") -> NoReturn:
        """Log the original error with operation context and raise a BackendError."""
        message = getattr(error, "explanation", None) or str(error) or "Unknown error occurred"
        status_code = getattr(error, "status_code", None) or 500
        self.logger.error(
            "Backend operation failed",
            context=context,
            error=str(error),
            error_type=type(error).__name__,
            status_code=status_code,
        )
        raise BackendError(str(message), context=context or None, status_code=status_code) from error

    def _resolve_timeout(self, timeout: int | None) -> int:
        return self.stop_timeout if timeout is None else timeout
