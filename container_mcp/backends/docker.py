"""Single-host backend built on the Docker Engine API."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import docker

from ..core.log_parser import parse_logs
from ..models.container import ContainerInfo, DeployConfig, LogEntry, PortBinding, VolumeBinding
from ..utils import format_env, format_published_port, parse_since, sort_ports, to_iso8601
from .base import ContainerBackend


async def fetch_container_logs(
    client: docker.DockerClient,
    container_id: str,
    since: datetime | int | float | str | None = None,
    tail: int | None = None,
) -> list[LogEntry]:
    """Fetch stdout and stderr with timestamps for one container and parse them.

    ``since`` must already be in a form the SDK accepts (see ``parse_since``).
    """
    container = await asyncio.to_thread(client.containers.get, container_id)
    raw = await asyncio.to_thread(
        lambda: container.logs(
            stdout=True,
            stderr=True,
            timestamps=True,
            since=since,
            tail=tail if tail is not None else "all",
        )
    )
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return parse_logs(raw)


class DockerBackend(ContainerBackend):
    """Runs each deployment as a single container on one Docker Engine."""

    name = "docker"
    name_prefix = "container"

    async def start(self, id: str) -> None:
        try:
            client = await self.clients.get_client()
            container = await asyncio.to_thread(client.containers.get, id)
            await asyncio.to_thread(container.start)
            self.logger.info("Container started", container_id=id)
        except Exception as e:
            self.handle_error(e, f"Failed to start container {id}")

    async def stop(self, id: str, timeout: int | None = None) -> None:
        timeout = self._resolve_timeout(timeout)
        try:
            client = await self.clients.get_client()
            container = await asyncio.to_thread(client.containers.get, id)
            await asyncio.to_thread(lambda: container.stop(timeout=timeout))
            self.logger.info("Container stopped", container_id=id, timeout=timeout)
        except Exception as e:
            self.handle_error(e, f"Failed to stop container {id}")

    async def deploy(self, config: DeployConfig) -> str:
        self.validate_config(config)
        container_name = config.name or self.generate_name()
        create_kwargs: dict[str, Any] = {
            "name": container_name,
            "environment": format_env(config.env),
            "ports": self._port_bindings(config.ports),
            "volumes": self._volume_binds(config.volumes),
            "restart_policy": {"Name": "always" if config.restart_policy else "no"},
            "labels": config.labels or {},
        }
        if config.network:
            create_kwargs["network"] = config.network

        try:
            client = await self.clients.get_client()
            container = await asyncio.to_thread(
                lambda: client.containers.create(config.image, **create_kwargs)
            )
            await asyncio.to_thread(container.start)
            self.logger.info(
                "Container deployed",
                container_id=container.id,
                name=container_name,
                image=config.image,
            )
            return container.id
        except Exception as e:
            self.handle_error(e, "Docker deployment failed")

    async def list(self) -> list[ContainerInfo]:
        try:
            client = await self.clients.get_client()
            containers = await asyncio.to_thread(
                lambda: client.containers.list(all=True, sparse=True)
            )
            return [self._container_info(container.attrs) for container in containers]
        except Exception as e:
            self.handle_error(e, "Failed to list containers")

    async def remove(self, id: str) -> None:
        try:
            client = await self.clients.get_client()
            container = await asyncio.to_thread(client.containers.get, id)
            try:
                await asyncio.to_thread(container.stop)
            except docker.errors.APIError as e:
                # Already stopped containers reject the stop request
                self.logger.debug("Stop before remove failed", container_id=id, error=str(e))
            await asyncio.to_thread(container.remove)
            self.logger.info("Container removed", container_id=id)
        except Exception as e:
            self.handle_error(e, f"Failed to remove container {id}")

    async def logs(self, id: str, since: str | None = None, tail: int | None = None) -> list[LogEntry]:
        try:
            client = await self.clients.get_client()
            return await fetch_container_logs(client, id, parse_since(since), tail)
        except Exception as e:
            self.handle_error(e, f"Failed to get logs for {id}")

    @staticmethod
    def _port_bindings(ports: list[PortBinding] | None) -> dict[str, int]:
        return {
            f"{port.container_port}/{port.protocol or 'tcp'}": port.host_port
            for port in ports or []
        }

    @staticmethod
    def _volume_binds(volumes: list[VolumeBinding] | None) -> list[str]:
        return [
            f"{volume.host_path}:{volume.container_path}:{volume.mode or 'rw'}"
            for volume in volumes or []
        ]

    @staticmethod
    def _container_info(summary: dict[str, Any]) -> ContainerInfo:
        """Build a ContainerInfo from a container list summary record."""
        names = summary.get("Names") or []
        ports = sort_ports(
            format_published_port(port.get("PublicPort"), port.get("PrivatePort"))
            for port in summary.get("Ports") or []
        )
        created = datetime.fromtimestamp(summary.get("Created") or 0, tz=UTC)
        return ContainerInfo(
            id=summary.get("Id", ""),
            name=names[0].removeprefix("/") if names else "",
            image=summary.get("Image", ""),
            status=summary.get("State", ""),
            ports=ports,
            created_at=to_iso8601(created),
            labels=summary.get("Labels") or None,
        )
