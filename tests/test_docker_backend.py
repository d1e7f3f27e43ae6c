"""Tests for the single-host Docker backend using a mocked Docker SDK."""

import re
from datetime import datetime
from unittest.mock import MagicMock

import docker
import pytest

from container_mcp.core.exceptions import BackendError, ValidationError
from container_mcp.models.container import DeployConfig, PortBinding, VolumeBinding


def not_found(message: str) -> docker.errors.NotFound:
    return docker.errors.NotFound(message, response=MagicMock(status_code=404), explanation=message)


@pytest.fixture
def container(docker_client):
    container = MagicMock()
    container.id = "abc123"
    docker_client.containers.get.return_value = container
    return container


class TestLifecycle:
    """Start, stop and remove."""

    @pytest.mark.asyncio
    async def test_start(self, docker_backend, docker_client, container):
        await docker_backend.start("abc123")

        docker_client.containers.get.assert_called_once_with("abc123")
        container.start.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_stop_uses_default_timeout(self, docker_backend, container):
        await docker_backend.stop("abc123")

        container.stop.assert_called_once_with(timeout=10)

    @pytest.mark.asyncio
    async def test_stop_with_explicit_timeout(self, docker_backend, container):
        await docker_backend.stop("abc123", timeout=3)

        container.stop.assert_called_once_with(timeout=3)

    @pytest.mark.asyncio
    async def test_missing_container_raises_backend_error(self, docker_backend, docker_client):
        docker_client.containers.get.side_effect = not_found("No such container: nope")

        with pytest.raises(BackendError) as exc_info:
            await docker_backend.stop("nope")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "No such container: nope"
        assert exc_info.value.context == "Failed to stop container nope"
        assert isinstance(exc_info.value.__cause__, docker.errors.NotFound)

    @pytest.mark.asyncio
    async def test_error_without_status_defaults_to_500(self, docker_backend, container):
        container.start.side_effect = RuntimeError("socket closed")

        with pytest.raises(BackendError) as exc_info:
            await docker_backend.start("abc123")

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "socket closed"

    @pytest.mark.asyncio
    async def test_remove_ignores_stop_failure(self, docker_backend, container):
        container.stop.side_effect = docker.errors.APIError("container is not running")

        await docker_backend.remove("abc123")

        container.remove.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_remove_failure_raises(self, docker_backend, container):
        container.remove.side_effect = docker.errors.APIError(
            "conflict", response=MagicMock(status_code=409), explanation="removal in progress"
        )

        with pytest.raises(BackendError) as exc_info:
            await docker_backend.remove("abc123")

        assert exc_info.value.status_code == 409
        assert exc_info.value.context == "Failed to remove container abc123"


class TestDeploy:
    """Deployment mapping onto containers.create."""

    @pytest.mark.asyncio
    async def test_deploy_maps_config(self, docker_backend, docker_client):
        created = MagicMock()
        created.id = "new123"
        docker_client.containers.create.return_value = created

        config = DeployConfig(
            image="nginx:latest",
            name="web",
            env={"A": "1", "B": "x=y"},
            ports=[
                PortBinding(host_port=8080, container_port=80),
                PortBinding(host_port=5353, container_port=53, protocol="udp"),
            ],
            volumes=[VolumeBinding(host_path="/srv/html", container_path="/usr/share/nginx", mode="ro")],
            network="frontend",
            labels={"app": "web"},
        )

        container_id = await docker_backend.deploy(config)

        assert container_id == "new123"
        docker_client.containers.create.assert_called_once_with(
            "nginx:latest",
            name="web",
            environment=["A=1", "B=x=y"],
            ports={"80/tcp": 8080, "53/udp": 5353},
            volumes=["/srv/html:/usr/share/nginx:ro"],
            restart_policy={"Name": "always"},
            labels={"app": "web"},
            network="frontend",
        )
        created.start.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_deploy_defaults(self, docker_backend, docker_client):
        docker_client.containers.create.return_value = MagicMock(id="new123")

        await docker_backend.deploy(DeployConfig(image="redis", restart_policy=False))

        args, kwargs = docker_client.containers.create.call_args
        assert args == ("redis",)
        assert re.fullmatch(r"container-[a-z0-9]{6}", kwargs["name"])
        assert kwargs["restart_policy"] == {"Name": "no"}
        assert kwargs["environment"] == []
        assert kwargs["ports"] == {}
        assert "network" not in kwargs

    @pytest.mark.asyncio
    async def test_duplicate_host_ports_rejected_before_daemon_call(
        self, docker_backend, clients, docker_client
    ):
        config = DeployConfig(
            image="nginx",
            ports=[
                PortBinding(host_port=8080, container_port=80),
                PortBinding(host_port=8080, container_port=443),
            ],
        )

        with pytest.raises(ValidationError, match="Duplicate host ports detected"):
            await docker_backend.deploy(config)

        clients.get_client.assert_not_awaited()
        docker_client.containers.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_deploy_failure(self, docker_backend, docker_client):
        docker_client.containers.create.side_effect = docker.errors.ImageNotFound(
            "missing", response=MagicMock(status_code=404), explanation="No such image: ghost"
        )

        with pytest.raises(BackendError) as exc_info:
            await docker_backend.deploy(DeployConfig(image="ghost"))

        assert exc_info.value.context == "Docker deployment failed"
        assert exc_info.value.status_code == 404


class TestList:
    """Normalization of container summaries."""

    @pytest.mark.asyncio
    async def test_list_builds_info_records(self, docker_backend, docker_client):
        docker_client.containers.list.return_value = [
            MagicMock(
                attrs={
                    "Id": "abc123",
                    "Names": ["/web"],
                    "Image": "nginx:latest",
                    "State": "running",
                    "Created": 1704067200,
                    "Ports": [
                        {"PrivatePort": 80, "PublicPort": 8080, "Type": "tcp"},
                        {"PrivatePort": 80, "PublicPort": 8080, "Type": "tcp"},
                        {"PrivatePort": 443, "Type": "tcp"},
                    ],
                    "Labels": {"app": "web"},
                }
            ),
            MagicMock(
                attrs={
                    "Id": "def456",
                    "Names": ["/worker"],
                    "Image": "python:3.12",
                    "State": "exited",
                    "Created": 1704067200,
                    "Ports": [],
                    "Labels": {},
                }
            ),
        ]

        containers = await docker_backend.list()

        docker_client.containers.list.assert_called_once_with(all=True, sparse=True)
        web, worker = containers
        assert web.id == "abc123"
        assert web.name == "web"
        assert web.image == "nginx:latest"
        assert web.status == "running"
        assert web.ports == ["443", "8080:80"]
        assert web.created_at == "2024-01-01T00:00:00.000Z"
        assert web.labels == {"app": "web"}
        assert web.env is None
        assert worker.status == "exited"
        assert worker.labels is None

    @pytest.mark.asyncio
    async def test_list_failure(self, docker_backend, docker_client):
        docker_client.containers.list.side_effect = docker.errors.APIError("daemon gone")

        with pytest.raises(BackendError, match="daemon gone"):
            await docker_backend.list()


class TestLogs:
    """Log retrieval."""

    @pytest.mark.asyncio
    async def test_logs_are_fetched_and_parsed(self, docker_backend, container):
        container.logs.return_value = (
            b"2024-01-01T00:00:00.000000000Z hello\n"
            b"2024-01-01T00:00:01.000000000Z error: boom\n"
        )

        entries = await docker_backend.logs("abc123")

        container.logs.assert_called_once_with(
            stdout=True, stderr=True, timestamps=True, since=None, tail="all"
        )
        assert [(e.timestamp, e.stream, e.message) for e in entries] == [
            ("2024-01-01 00:00:00.000000000", "stdout", "hello"),
            ("2024-01-01 00:00:01.000000000", "stderr", "error: boom"),
        ]

    @pytest.mark.asyncio
    async def test_since_and_tail_are_converted(self, docker_backend, container):
        container.logs.return_value = b""

        await docker_backend.logs("abc123", since="10m", tail=50)

        kwargs = container.logs.call_args.kwargs
        assert isinstance(kwargs["since"], datetime)
        assert kwargs["tail"] == 50

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_replaced(self, docker_backend, container):
        container.logs.return_value = b"2024-01-01T00:00:00.000000000Z caf\xe9\n"

        entries = await docker_backend.logs("abc123")

        assert entries[0].message == "caf�"
