"""Clustered backend built on Docker Swarm replicated services."""

from __future__ import annotations

import asyncio
import copy
from datetime import UTC, datetime
from typing import Any

import docker
from docker.types import EndpointSpec, Mount, RestartPolicy, ServiceMode

from ..core.exceptions import PartialFailure
from ..models.container import ContainerInfo, DeployConfig, LogEntry, PortBinding, VolumeBinding
from ..models.enums import ServiceStatus
from ..utils import (
    format_endpoint_port,
    format_env,
    parse_docker_timestamp,
    parse_env_list,
    parse_since,
    sort_ports,
    to_iso8601,
)
from .base import ContainerBackend
from .docker import fetch_container_logs

STOP_POLL_INTERVAL = 1.0
LOG_TASK_STATES = ["running", "accepted"]


def aggregate_service_status(desired_replicas: int, running_tasks: int) -> str:
    """Fold replica counts into one service status.

    Examples:
        >>> aggregate_service_status(3, 3)
        'running'
        >>> aggregate_service_status(3, 1)
        'partial'
    """
    if desired_replicas == 0:
        return ServiceStatus.STOPPED.value
    if running_tasks == desired_replicas:
        return ServiceStatus.RUNNING.value
    if running_tasks > 0:
        return ServiceStatus.PARTIAL.value
    return ServiceStatus.PENDING.value


def desired_replicas(spec: dict[str, Any]) -> int:
    """Replica count of a replicated service spec, 0 when absent."""
    replicated = (spec.get("Mode") or {}).get("Replicated") or {}
    return replicated.get("Replicas") or 0


class SwarmBackend(ContainerBackend):
    """Runs each deployment as a replicated Swarm service.

    Start and stop are expressed as replica scaling: stopping scales the
    service to zero, starting restores the previous replica count (or one).
    """

    name = "swarm"
    name_prefix = "service"

    async def start(self, id: str) -> None:
        try:
            client = await self.clients.get_client()
            service = await asyncio.to_thread(client.services.get, id)
            spec = service.attrs.get("Spec") or {}

            task_template = copy.deepcopy(spec.get("TaskTemplate") or {})
            task_template["RestartPolicy"] = dict(
                task_template.get("RestartPolicy") or {"Condition": "any"}
            )
            replicas = desired_replicas(spec) or 1

            await self._update_service(client, service, task_template, replicas)
            self.logger.info("Service started", service_id=id, replicas=replicas)
        except Exception as e:
            self.handle_error(e, f"Failed to start service {id}")

    async def stop(self, id: str, timeout: int | None = None) -> None:
        """Scale the service to zero and wait for its tasks to wind down.

        Returns as soon as no task is running, or after ``timeout`` seconds.
        The return means the stop was requested, not that it completed.
        """
        timeout = self._resolve_timeout(timeout)
        try:
            client = await self.clients.get_client()
            service = await asyncio.to_thread(client.services.get, id)
            spec = service.attrs.get("Spec") or {}

            task_template = copy.deepcopy(spec.get("TaskTemplate") or {})
            condition = (task_template.get("RestartPolicy") or {}).get("Condition") or "none"
            task_template["RestartPolicy"] = {
                **(task_template.get("RestartPolicy") or {}),
                "Condition": condition,
            }

            await self._update_service(client, service, task_template, 0)
            self.logger.info("Service scaled to zero", service_id=id, timeout=timeout)
            await self._wait_for_shutdown(service, timeout)
        except Exception as e:
            self.handle_error(e, f"Failed to stop service {id}")

    async def deploy(self, config: DeployConfig) -> str:
        self.validate_config(config)
        service_name = config.name or self.generate_name()
        port_configs = self._port_configs(config.ports)
        create_kwargs: dict[str, Any] = {
            "name": service_name,
            "env": format_env(config.env),
            "mounts": self._mounts(config.volumes),
            "mode": ServiceMode("replicated", replicas=config.replicas or 1),
            "restart_policy": RestartPolicy(
                condition="any" if config.restart_policy else "none"
            ),
            "labels": config.labels or {},
        }
        if config.network:
            create_kwargs["networks"] = [config.network]
        if port_configs:
            create_kwargs["endpoint_spec"] = EndpointSpec(ports=port_configs)

        try:
            client = await self.clients.get_client()
            service = await asyncio.to_thread(
                lambda: client.services.create(config.image, **create_kwargs)
            )
            self.logger.info(
                "Service deployed",
                service_id=service.id,
                name=service_name,
                image=config.image,
                replicas=config.replicas,
            )
            return service.id
        except Exception as e:
            self.handle_error(e, "Swarm deployment failed")

    async def list(self) -> list[ContainerInfo]:
        try:
            client = await self.clients.get_client()
            services = await asyncio.to_thread(client.services.list)
            return list(await asyncio.gather(*(self._service_info(s) for s in services)))
        except Exception as e:
            self.handle_error(e, "Failed to list services")

    async def remove(self, id: str) -> None:
        try:
            client = await self.clients.get_client()
            service = await asyncio.to_thread(client.services.get, id)
            await asyncio.to_thread(service.remove)
            self.logger.info("Service removed", service_id=id)
        except Exception as e:
            self.handle_error(e, f"Failed to remove service {id}")

    async def logs(self, id: str, since: str | None = None, tail: int | None = None) -> list[LogEntry]:
        """Merge the logs of every live task, ordered by timestamp.

        A task whose container logs cannot be fetched is skipped with a warning.
        """
        try:
            client = await self.clients.get_client()
            tasks = await asyncio.to_thread(
                lambda: client.api.tasks(filters={"service": id, "desired-state": LOG_TASK_STATES})
            )
            docker_since = parse_since(since)
            results = await asyncio.gather(
                *(
                    self._task_logs(client, task, docker_since, tail)
                    for task in tasks
                    if self._task_container_id(task)
                ),
                return_exceptions=True,
            )

            entries: list[LogEntry] = []
            for result in results:
                if isinstance(result, PartialFailure):
                    self.logger.warning(str(result), service_id=id, error=str(result.__cause__))
                    continue
                if isinstance(result, BaseException):
                    raise result
                entries.extend(result)
            entries.sort(key=lambda entry: entry.timestamp)
            return entries
        except Exception as e:
            self.handle_error(e, f"Failed to get logs for service {id}")

    async def _update_service(
        self,
        client: docker.DockerClient,
        service: Any,
        task_template: dict[str, Any],
        replicas: int,
    ) -> None:
        task_template["ForceUpdate"] = (task_template.get("ForceUpdate") or 0) + 1
        await asyncio.to_thread(
            lambda: client.api.update_service(
                service.id,
                service.version,
                task_template=task_template,
                mode=ServiceMode("replicated", replicas=replicas),
                fetch_current_spec=True,
            )
        )

    async def _wait_for_shutdown(self, service: Any, timeout: int) -> None:
        """Poll until no task is running; slow polls count against ``timeout``."""
        if timeout <= 0:
            return
        try:
            async with asyncio.timeout(timeout):
                while True:
                    try:
                        tasks = await asyncio.to_thread(service.tasks)
                    except Exception as e:
                        self.logger.warning(
                            "Failed to poll service tasks", service_id=service.id, error=str(e)
                        )
                        return
                    if not any(
                        (task.get("Status") or {}).get("State") == "running" for task in tasks
                    ):
                        return
                    await asyncio.sleep(STOP_POLL_INTERVAL)
        except TimeoutError:
            self.logger.info(
                "Service tasks still running at stop timeout", service_id=service.id, timeout=timeout
            )

    async def _running_task_count(self, service: Any) -> int:
        try:
            tasks = await asyncio.to_thread(
                lambda: service.tasks(filters={"desired-state": "running"})
            )
        except Exception as e:
            self.logger.warning(
                "Failed to query service tasks, assuming none running",
                service_id=service.id,
                error=str(e),
            )
            return 0
        return len(tasks)

    async def _service_info(self, service: Any) -> ContainerInfo:
        attrs = service.attrs
        spec = attrs.get("Spec") or {}
        container_spec = (spec.get("TaskTemplate") or {}).get("ContainerSpec") or {}

        ports = sort_ports(
            format_endpoint_port(port.get("PublishedPort"), port.get("TargetPort"), port.get("Protocol"))
            for port in (attrs.get("Endpoint") or {}).get("Ports") or []
        )

        desired = desired_replicas(spec)
        running = await self._running_task_count(service) if desired else 0
        created = parse_docker_timestamp(attrs.get("CreatedAt")) or datetime.now(UTC)

        return ContainerInfo(
            id=service.id,
            name=spec.get("Name", ""),
            image=container_spec.get("Image", ""),
            status=aggregate_service_status(desired, running),
            ports=ports,
            created_at=to_iso8601(created),
            labels=spec.get("Labels") or None,
            env=parse_env_list(container_spec.get("Env")),
        )

    async def _task_logs(
        self,
        client: docker.DockerClient,
        task: dict[str, Any],
        since: datetime | int | float | str | None,
        tail: int | None,
    ) -> list[LogEntry]:
        container_id = self._task_container_id(task)
        try:
            return await fetch_container_logs(client, container_id, since, tail)
        except Exception as e:
            raise PartialFailure(
                f"Could not fetch logs for container {container_id} of task {task.get('ID')}"
            ) from e

    @staticmethod
    def _task_container_id(task: dict[str, Any]) -> str | None:
        return ((task.get("Status") or {}).get("ContainerStatus") or {}).get("ContainerID")

    @staticmethod
    def _port_configs(ports: list[PortBinding] | None) -> list[dict[str, Any]]:
        """Endpoint port configs; entries with a non-numeric target port are dropped."""
        configs = []
        for port in ports or []:
            try:
                target_port = int(port.container_port)
            except (TypeError, ValueError):
                continue
            port_config: dict[str, Any] = {
                "Protocol": (port.protocol or "tcp").lower(),
                "TargetPort": target_port,
                "PublishMode": "ingress",
            }
            if port.host_port:
                port_config["PublishedPort"] = int(port.host_port)
            configs.append(port_config)
        return configs

    @staticmethod
    def _mounts(volumes: list[VolumeBinding] | None) -> list[Mount]:
        return [
            Mount(
                target=volume.container_path,
                source=volume.host_path,
                type="bind",
                read_only=volume.mode == "ro",
            )
            for volume in volumes or []
        ]
