"""
Container Lifecycle Service

Backend-agnostic façade over the configured container backend.
"""

from __future__ import annotations

import structlog

from ..backends.base import ContainerBackend
from ..models.container import ContainerInfo, DeployConfig, ListFilter, LogEntry
from .filters import apply_filter


class ContainerService:
    """Lifecycle operations with filtering and graceful degradation.

    Mutating operations re-raise backend errors after logging them. Read-only
    queries (``list`` and ``logs``) degrade to an empty result instead.
    """

    def __init__(self, backend: ContainerBackend):
        self.backend = backend
        self.logger = structlog.get_logger()

    def _log_error(self, error: Exception, context: str, **kwargs) -> None:
        self.logger.error(
            context,
            error=str(error),
            error_type=type(error).__name__,
            backend=self.backend.name,
            **kwargs,
        )

    async def start(self, id: str) -> None:
        try:
            await self.backend.start(id)
        except Exception as e:
            self._log_error(e, f"Failed to start container {id}", container_id=id)
            raise

    async def stop(self, id: str, timeout: int | None = None) -> None:
        try:
            await self.backend.stop(id, timeout)
        except Exception as e:
            self._log_error(e, f"Failed to stop container {id}", container_id=id)
            raise

    async def deploy(self, config: DeployConfig) -> str:
        try:
            return await self.backend.deploy(config)
        except Exception as e:
            self._log_error(e, "Deployment failed", image=config.image)
            raise

    async def list(self, filter: ListFilter | None = None) -> list[ContainerInfo]:
        """List containers matching ``filter``; returns [] if the backend fails."""
        try:
            containers = await self.backend.list()
            return apply_filter(containers, filter)
        except Exception as e:
            self._log_error(e, "Failed to list containers")
            return []

    async def get_by_id(self, id: str) -> ContainerInfo | None:
        """Exact id lookup over a fresh listing. Backend errors propagate."""
        containers = await self.backend.list()
        return next((container for container in containers if container.id == id), None)

    async def logs(self, id: str, since: str | None = None, tail: int | None = None) -> list[LogEntry]:
        """Fetch parsed logs; returns [] if the backend fails."""
        try:
            return await self.backend.logs(id, since, tail)
        except Exception as e:
            self._log_error(e, f"Failed to get logs for {id}", container_id=id)
            return []

    async def remove(self, id: str) -> None:
        try:
            await self.backend.remove(id)
        except Exception as e:
            self._log_error(e, f"Failed to remove container {id}", container_id=id)
            raise
