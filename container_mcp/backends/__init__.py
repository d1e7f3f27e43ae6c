"""Container execution backends and the startup-time backend factory."""

import structlog

from ..core.config_loader import ContainerMCPConfig
from ..core.docker_client import DockerClientManager
from ..core.exceptions import ConfigurationError
from ..models.enums import BackendType
from .base import ContainerBackend
from .docker import DockerBackend
from .swarm import SwarmBackend

logger = structlog.get_logger()

BACKENDS: dict[BackendType, type[ContainerBackend]] = {
    BackendType.DOCKER: DockerBackend,
    BackendType.SWARM: SwarmBackend,
}


def create_backend(
    config: ContainerMCPConfig, clients: DockerClientManager | None = None
) -> ContainerBackend:
    """Instantiate the backend named by ``config.backend`` (case-insensitive).

    Raises:
        ConfigurationError: If the backend is unknown or not implemented.
    """
    backend_name = (config.backend or "").strip().lower()
    try:
        backend_type = BackendType(backend_name)
    except ValueError as e:
        supported = ", ".join(t.value for t in BACKENDS)
        raise ConfigurationError(
            f"Unknown container backend '{config.backend}' (supported: {supported})"
        ) from e

    backend_class = BACKENDS.get(backend_type)
    if backend_class is None:
        raise ConfigurationError(f"Container backend '{backend_type.value}' is not implemented")

    logger.info("Container backend selected", backend=backend_type.value)
    return backend_class(clients or DockerClientManager(config), config)


__all__ = [
    "BACKENDS",
    "ContainerBackend",
    "DockerBackend",
    "SwarmBackend",
    "create_backend",
]
