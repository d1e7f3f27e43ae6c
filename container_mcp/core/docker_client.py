"""Docker SDK client management.

One client per process, created lazily on first use so that startup does not
require a reachable daemon. A cached client that stops answering pings is
dropped and rebuilt on the next call.
"""

import asyncio

import docker
import structlog

from .config_loader import ContainerMCPConfig
from .exceptions import BackendError

logger = structlog.get_logger()


class DockerClientManager:
    """Creates and caches the Docker SDK client for the configured daemon."""

    def __init__(self, config: ContainerMCPConfig):
        self.config = config
        self._client: docker.DockerClient | None = None
        self._lock = asyncio.Lock()

    @property
    def base_url(self) -> str:
        return self.config.docker_base_url

    def _create_client(self) -> docker.DockerClient:
        client = docker.DockerClient(
            base_url=self.base_url, timeout=self.config.docker_client_timeout
        )
        client.ping()
        logger.debug("Created Docker SDK client", base_url=self.base_url)
        return client

    async def get_client(self) -> docker.DockerClient:
        """Return a live client, reconnecting if the cached one is dead.

        Concurrent callers share one client; only one of them builds it.

        Raises:
            BackendError: If the daemon cannot be reached (status 503).
        """
        async with self._lock:
            if self._client is not None:
                try:
                    await asyncio.to_thread(self._client.ping)
                    return self._client
                except Exception:
                    logger.debug(
                        "Cached Docker client is dead, reconnecting", base_url=self.base_url
                    )
                    self.close()

            try:
                self._client = await asyncio.to_thread(self._create_client)
            except docker.errors.DockerException as e:
                logger.error(
                    "Failed to connect to Docker daemon", base_url=self.base_url, error=str(e)
                )
                raise BackendError(
                    f"Could not connect to Docker daemon at {self.base_url}: {e}",
                    context="connect",
                    status_code=503,
                ) from e
            return self._client

    def close(self) -> None:
        if self._client is None:
            return
        try:
            self._client.close()
        except Exception as e:
            logger.debug("Error closing Docker client", error=str(e))
        self._client = None
