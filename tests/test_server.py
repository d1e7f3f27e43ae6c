"""Tests for the MCP tool surface."""

import pytest
from fastmcp import Client

from container_mcp.core.exceptions import BackendError, ValidationError
from container_mcp.models.container import DeployConfig, ListFilter, LogEntry
from container_mcp.server import ContainerMCPServer

from .conftest import make_container

TOOL_NAMES = {
    "start_container",
    "stop_container",
    "deploy_container",
    "list_containers",
    "get_container",
    "container_logs",
    "remove_container",
}


@pytest.fixture
def server(config, mock_backend) -> ContainerMCPServer:
    server = ContainerMCPServer(config, backend=mock_backend)
    server._initialize_app()
    return server


class TestLifecycleTools:
    """start/stop/deploy/remove responses."""

    @pytest.mark.asyncio
    async def test_start_container(self, server, mock_backend):
        assert await server.start_container("abc") == {"status": "started"}
        mock_backend.start.assert_awaited_once_with("abc")

    @pytest.mark.asyncio
    async def test_stop_container(self, server, mock_backend):
        assert await server.stop_container("abc", timeout=5) == {"status": "stopped"}
        mock_backend.stop.assert_awaited_once_with("abc", 5)

    @pytest.mark.asyncio
    async def test_deploy_container(self, server, mock_backend):
        mock_backend.deploy.return_value = "new123"

        result = await server.deploy_container(
            {"image": "nginx", "name": "web", "ports": [{"hostPort": 8080, "containerPort": 80}]}
        )

        assert result == {"id": "new123"}
        [config] = mock_backend.deploy.await_args.args
        assert isinstance(config, DeployConfig)
        assert config.ports[0].host_port == 8080

    @pytest.mark.asyncio
    async def test_remove_container(self, server, mock_backend):
        assert await server.remove_container("abc") == {}
        mock_backend.remove.assert_awaited_once_with("abc")

    @pytest.mark.asyncio
    async def test_backend_error_becomes_problem_response(self, server, mock_backend):
        mock_backend.start.side_effect = BackendError(
            "No such container: abc", context="Failed to start container abc", status_code=404
        )

        result = await server.start_container("abc")

        assert result["success"] is False
        assert result["error"] == "No such container: abc"
        assert result["type"] == "/problems/container-not-found"
        assert result["status_code"] == 404
        assert result["context"] == "Failed to start container abc"
        assert result["operation"] == "start_container"
        assert "timestamp" in result

    @pytest.mark.asyncio
    async def test_unreachable_daemon(self, server, mock_backend):
        mock_backend.stop.side_effect = BackendError(
            "Could not connect to Docker daemon", context="connect", status_code=503
        )

        result = await server.stop_container("abc")

        assert result["type"] == "/problems/backend-unavailable"
        assert result["status_code"] == 503

    @pytest.mark.asyncio
    async def test_duplicate_ports_become_validation_problem(self, server, mock_backend):
        mock_backend.deploy.side_effect = ValidationError("Duplicate host ports detected")

        result = await server.deploy_container({"image": "nginx"})

        assert result["type"] == "/problems/validation-error"
        assert result["error"] == "Duplicate host ports detected"
        assert result["status_code"] == 400

    @pytest.mark.asyncio
    async def test_invalid_deploy_payload_is_rejected_before_backend(self, server, mock_backend):
        result = await server.deploy_container({"image": "nginx", "name": "Not Valid", "replicas": 50})

        assert result["success"] is False
        assert result["type"] == "/problems/validation-error"
        assert {error["field"] for error in result["errors"]} == {"name", "replicas"}
        mock_backend.deploy.assert_not_awaited()


class TestQueryTools:
    """list/get/logs responses."""

    @pytest.mark.asyncio
    async def test_list_containers(self, server, mock_backend):
        mock_backend.list.return_value = [make_container(id="a"), make_container(id="b", labels=None)]

        result = await server.list_containers()

        assert [container["id"] for container in result["containers"]] == ["a", "b"]
        assert result["containers"][0]["createdAt"] == "2024-01-01T00:00:00.000Z"
        assert "labels" not in result["containers"][1]

    @pytest.mark.asyncio
    async def test_list_containers_with_filter(self, server, mock_backend):
        mock_backend.list.return_value = [
            make_container(id="a", status="running"),
            make_container(id="b", status="exited"),
        ]

        result = await server.list_containers({"status": "exited"})

        assert [container["id"] for container in result["containers"]] == ["b"]

    @pytest.mark.asyncio
    async def test_list_containers_invalid_filter(self, server, mock_backend):
        result = await server.list_containers({"createdFrom": "not-a-date"})

        assert result["type"] == "/problems/validation-error"
        mock_backend.list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_containers_degrades(self, server, mock_backend):
        mock_backend.list.side_effect = BackendError("daemon unreachable", status_code=503)

        assert await server.list_containers() == {"containers": []}

    @pytest.mark.asyncio
    async def test_get_container(self, server, mock_backend):
        mock_backend.list.return_value = [make_container(id="abc")]

        result = await server.get_container("abc")

        assert result["container"]["id"] == "abc"
        assert (await server.get_container("missing")) == {"container": None}

    @pytest.mark.asyncio
    async def test_get_container_reports_backend_errors(self, server, mock_backend):
        mock_backend.list.side_effect = BackendError("daemon unreachable", status_code=503)

        result = await server.get_container("abc")

        assert result["success"] is False
        assert result["status_code"] == 503

    @pytest.mark.asyncio
    async def test_container_logs(self, server, mock_backend):
        mock_backend.logs.return_value = [
            LogEntry(timestamp="2024-01-01 00:00:00.000", message="hello", stream="stdout")
        ]

        result = await server.container_logs("abc", since="5m", tail=10)

        assert result == {
            "logs": [{"timestamp": "2024-01-01 00:00:00.000", "message": "hello", "stream": "stdout"}]
        }
        mock_backend.logs.assert_awaited_once_with("abc", "5m", 10)

    @pytest.mark.asyncio
    async def test_container_logs_degrade(self, server, mock_backend):
        mock_backend.logs.side_effect = BackendError("No such container: abc", status_code=404)

        assert await server.container_logs("abc") == {"logs": []}


class TestInMemoryClient:
    """Tool registration through FastMCP's in-memory client."""

    @pytest.mark.asyncio
    async def test_tools_are_registered(self, server):
        async with Client(server.app) as client:
            tools = await client.list_tools()

        assert {tool.name for tool in tools} == TOOL_NAMES

    @pytest.mark.asyncio
    async def test_call_tool(self, server, mock_backend):
        async with Client(server.app) as client:
            result = await client.call_tool("start_container", {"container_id": "abc"})

        assert result.data == {"status": "started"}
        mock_backend.start.assert_awaited_once_with("abc")

    @pytest.mark.asyncio
    async def test_call_list_tool_with_filter(self, server, mock_backend):
        mock_backend.list.return_value = [
            make_container(id="a", labels={"app": "web"}),
            make_container(id="b", labels={"app": "db"}),
        ]

        async with Client(server.app) as client:
            result = await client.call_tool(
                "list_containers", {"filter": {"labels": [{"app": "web"}]}}
            )

        assert [container["id"] for container in result.data["containers"]] == ["a"]


def test_list_filter_round_trip_through_dump():
    list_filter = ListFilter.model_validate({"labels": [{"app": "web"}], "status": "running"})

    assert list_filter.model_dump() == {"status": "running", "labels": [{"app": "web"}]}
