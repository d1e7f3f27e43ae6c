"""Shared pytest fixtures for Container MCP tests."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from container_mcp.backends.base import ContainerBackend
from container_mcp.backends.docker import DockerBackend
from container_mcp.backends.swarm import SwarmBackend
from container_mcp.core.config_loader import ContainerMCPConfig
from container_mcp.middleware import ErrorHandlingMiddleware, LoggingMiddleware
from container_mcp.models.container import ContainerInfo

CONFIG_ENV_VARS = (
    "CONTAINER_BACKEND",
    "CONTAINER_MCP_CONFIG",
    "DOCKER_SOCKET",
    "DOCKER_HOST",
    "DOCKER_CLIENT_TIMEOUT",
    "CONTAINER_STOP_TIMEOUT",
    "FASTMCP_HOST",
    "FASTMCP_PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of configuration under test."""
    for var in CONFIG_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config() -> ContainerMCPConfig:
    return ContainerMCPConfig(backend="docker")


@pytest.fixture
def docker_client() -> MagicMock:
    """Mock docker.DockerClient."""
    return MagicMock()


@pytest.fixture
def clients(docker_client) -> MagicMock:
    """Mock DockerClientManager handing out the mock client."""
    manager = MagicMock()
    manager.get_client = AsyncMock(return_value=docker_client)
    return manager


@pytest.fixture
def docker_backend(clients, config) -> DockerBackend:
    return DockerBackend(clients, config)


@pytest.fixture
def swarm_backend(clients, config) -> SwarmBackend:
    return SwarmBackend(clients, config)


@pytest.fixture
def mock_backend() -> MagicMock:
    """Backend double whose lifecycle methods are AsyncMocks."""
    backend = MagicMock(spec=ContainerBackend)
    backend.name = "docker"
    return backend


def make_container(**overrides) -> ContainerInfo:
    fields = {
        "id": "abc123def456",
        "name": "web",
        "image": "nginx:latest",
        "status": "running",
        "ports": ["80:80"],
        "created_at": "2024-01-01T00:00:00.000Z",
        "labels": {"app": "web"},
    }
    fields.update(overrides)
    return ContainerInfo(**fields)


def make_service(
    service_id: str = "svc1",
    replicas: int | None = 3,
    version: int = 7,
    **spec_overrides,
) -> MagicMock:
    """Mock docker Service object with realistic attrs."""
    spec = {
        "Name": "web",
        "Labels": {"app": "web"},
        "TaskTemplate": {
            "ContainerSpec": {"Image": "nginx:latest", "Env": ["A=1", "DSN=x=y"]},
            "ForceUpdate": 0,
        },
        "Mode": {"Replicated": {"Replicas": replicas}} if replicas is not None else {},
    }
    spec.update(spec_overrides)
    service = MagicMock()
    service.id = service_id
    service.version = version
    service.attrs = {
        "ID": service_id,
        "Version": {"Index": version},
        "CreatedAt": "2024-01-01T00:00:00.123456789Z",
        "Spec": spec,
        "Endpoint": {
            "Ports": [
                {"Protocol": "tcp", "TargetPort": 80, "PublishedPort": 8080},
                {"Protocol": "udp", "TargetPort": 9000},
                {"Protocol": "tcp", "TargetPort": 80, "PublishedPort": 8080},
            ]
        },
    }
    service.tasks.return_value = []
    return service


def running_task(container_id: str | None = None, task_id: str = "task1") -> dict:
    status = {"State": "running"}
    if container_id:
        status["ContainerStatus"] = {"ContainerID": container_id}
    return {"ID": task_id, "DesiredState": "running", "Status": status}


class MockCall:
    """Mock call_next function for middleware testing."""

    def __init__(self, return_value=None, exception=None, delay=0):
        self.return_value = return_value or {"status": "success"}
        self.exception = exception
        self.delay = delay
        self.call_count = 0

    async def __call__(self, context):
        self.call_count += 1

        if self.delay > 0:
            await asyncio.sleep(self.delay)

        if self.exception:
            raise self.exception

        return self.return_value


@pytest.fixture
def mock_context():
    """Create mock MiddlewareContext for unit tests."""
    context = MagicMock()
    context.method = "tools/call"
    context.source = "client"
    context.type = "request"
    context.timestamp = 1640995200.0
    context.message = SimpleNamespace(
        name="deploy_container",
        arguments={"config": {"image": "nginx", "env": {"DB_PASSWORD": "hunter2"}}},
    )
    return context


@pytest.fixture
def logging_middleware() -> LoggingMiddleware:
    return LoggingMiddleware(include_payloads=True, max_payload_length=100)


@pytest.fixture
def error_middleware() -> ErrorHandlingMiddleware:
    return ErrorHandlingMiddleware(include_traceback=False, track_error_stats=True)
