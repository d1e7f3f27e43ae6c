"""
FastMCP Container Lifecycle Server

Exposes start, stop, deploy, list, inspect, logs and remove operations as MCP
tools over a single container backend (Docker Engine or Docker Swarm) chosen
at startup.
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Annotated, Any

from fastmcp import FastMCP
from pydantic import Field
from pydantic import ValidationError as PydanticValidationError

from .backends import ContainerBackend, create_backend
from .core.config_loader import ContainerMCPConfig, load_config
from .core.error_response import ContainerMCPErrorResponse
from .core.exceptions import BackendError, ConfigurationError, ContainerMCPError, ValidationError
from .core.logging_config import get_server_logger, setup_logging
from .middleware import ErrorHandlingMiddleware, LoggingMiddleware
from .models.container import DeployConfig, ListFilter
from .services import ContainerService

SERVER_NAME = "Container Lifecycle Manager"

ContainerId = Annotated[str, Field(min_length=1, description="Container or service identifier")]


class ContainerMCPServer:
    """MCP server wrapping the lifecycle façade of the configured backend."""

    def __init__(self, config: ContainerMCPConfig, backend: ContainerBackend | None = None):
        self.config = config
        self.logger = get_server_logger()

        # Raises ConfigurationError for unknown or unimplemented backends
        self.backend = backend or create_backend(config)
        self.container_service = ContainerService(self.backend)

        # FastMCP app will be created later to prevent auto-start
        self.app: FastMCP | None = None

        self.logger.info(
            "Container MCP Server initialized",
            backend=self.backend.name,
            server_config=config.server.model_dump(),
        )

    def _initialize_app(self) -> None:
        """Initialize FastMCP app, middleware, and register tools."""
        self.app = FastMCP(SERVER_NAME)
        self._configure_middleware()

        read_only = {"readOnlyHint": True, "destructiveHint": False, "openWorldHint": True}
        mutating = {"readOnlyHint": False, "destructiveHint": False, "openWorldHint": True}

        self.app.tool(self.start_container, annotations={"title": "Start Container", **mutating})
        self.app.tool(self.stop_container, annotations={"title": "Stop Container", **mutating})
        self.app.tool(
            self.deploy_container,
            annotations={"title": "Deploy Container", **mutating, "idempotentHint": False},
        )
        self.app.tool(self.list_containers, annotations={"title": "List Containers", **read_only})
        self.app.tool(self.get_container, annotations={"title": "Get Container", **read_only})
        self.app.tool(self.container_logs, annotations={"title": "Container Logs", **read_only})
        self.app.tool(
            self.remove_container,
            annotations={"title": "Remove Container", **mutating, "destructiveHint": True},
        )

    def _configure_middleware(self) -> None:
        """Configure FastMCP middleware stack (first added = first executed)."""
        if self.app is None:
            return
        self.app.add_middleware(
            ErrorHandlingMiddleware(
                include_traceback=self.config.server.log_level.upper() == "DEBUG",
                track_error_stats=True,
            )
        )
        self.app.add_middleware(
            LoggingMiddleware(
                include_payloads=_parse_env_bool("LOG_INCLUDE_PAYLOADS", True),
                max_payload_length=_parse_env_int("LOG_MAX_PAYLOAD_LENGTH", 1000),
            )
        )

    def _error_response(self, error: Exception, operation: str) -> dict[str, Any]:
        if isinstance(error, BackendError):
            return ContainerMCPErrorResponse.backend_error(error, operation)
        if isinstance(error, ValidationError | PydanticValidationError):
            return ContainerMCPErrorResponse.validation_error(error, operation)
        return ContainerMCPErrorResponse.generic_error(str(error), {"operation": operation})

    async def start_container(self, container_id: ContainerId) -> dict[str, Any]:
        """Start a stopped container (or scale a stopped service back up)."""
        try:
            await self.container_service.start(container_id)
        except ContainerMCPError as e:
            return self._error_response(e, "start_container")
        return {"status": "started"}

    async def stop_container(
        self,
        container_id: ContainerId,
        timeout: Annotated[
            int | None,
            Field(ge=0, le=300, description="Seconds to wait before forcing the stop"),
        ] = None,
    ) -> dict[str, Any]:
        """Stop a running container (or scale a service to zero replicas)."""
        try:
            await self.container_service.stop(container_id, timeout)
        except ContainerMCPError as e:
            return self._error_response(e, "stop_container")
        return {"status": "stopped"}

    async def deploy_container(
        self,
        config: Annotated[
            dict[str, Any],
            Field(
                description=(
                    "Deployment config: image (required), name, env, ports "
                    "[{hostPort, containerPort, protocol}], volumes "
                    "[{hostPath, containerPath, mode}], replicas, network, labels, restartPolicy"
                )
            ),
        ],
    ) -> dict[str, Any]:
        """Deploy a new container (or replicated service) and start it."""
        try:
            deploy_config = DeployConfig.model_validate(config)
            container_id = await self.container_service.deploy(deploy_config)
        except (ContainerMCPError, PydanticValidationError) as e:
            return self._error_response(e, "deploy_container")
        return {"id": container_id}

    async def list_containers(
        self,
        filter: Annotated[
            dict[str, Any] | None,
            Field(
                description=(
                    "Optional filter: id, name, image (substring), status (exact), ports, "
                    "createdFrom/createdTo (ISO 8601), labels/env (lists of single-key maps)"
                ),
            ),
        ] = None,
    ) -> dict[str, Any]:
        """List containers, including stopped ones, optionally filtered."""
        try:
            list_filter = ListFilter.model_validate(filter) if filter else None
        except PydanticValidationError as e:
            return self._error_response(e, "list_containers")
        containers = await self.container_service.list(list_filter)
        return {"containers": [container.model_dump() for container in containers]}

    async def get_container(self, container_id: ContainerId) -> dict[str, Any]:
        """Look up one container by exact id."""
        try:
            container = await self.container_service.get_by_id(container_id)
        except ContainerMCPError as e:
            return self._error_response(e, "get_container")
        return {"container": container.model_dump() if container else None}

    async def container_logs(
        self,
        container_id: ContainerId,
        since: Annotated[
            str | None,
            Field(
                description="Unix timestamp, ISO 8601 timestamp or relative duration (e.g. 10m)",
            ),
        ] = None,
        tail: Annotated[
            int | None, Field(ge=0, description="Number of trailing lines")
        ] = None,
    ) -> dict[str, Any]:
        """Fetch parsed stdout/stderr logs of a container or of every task of a service."""
        entries = await self.container_service.logs(container_id, since, tail)
        return {"logs": [entry.model_dump() for entry in entries]}

    async def remove_container(self, container_id: ContainerId) -> dict[str, Any]:
        """Remove a container (stopping it first) or a service."""
        try:
            await self.container_service.remove(container_id)
        except ContainerMCPError as e:
            return self._error_response(e, "remove_container")
        return {}

    def run(self) -> None:
        """Run the FastMCP server."""
        try:
            self._initialize_app()

            self.logger.info(
                "Starting Container MCP Server",
                backend=self.backend.name,
                host=self.config.server.host,
                port=self.config.server.port,
            )

            # FastMCP.run() is synchronous and manages its own event loop
            if self.app is None:
                raise RuntimeError("FastMCP app not initialized")
            self.app.run(
                transport="http",
                host=self.config.server.host,
                port=self.config.server.port,
            )
        except Exception as e:
            self.logger.error("Server startup failed", error=str(e))
            raise
        finally:
            self.backend.clients.close()


def _parse_env_int(var_name: str, default: int) -> int:
    try:
        return int(os.getenv(var_name, str(default)))
    except ValueError:
        get_server_logger().warning(
            f"Invalid {var_name}; using default", value=os.getenv(var_name), default=default
        )
        return default


def _parse_env_bool(var_name: str, default: bool) -> bool:
    value = os.getenv(var_name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments. Unset flags leave loaded configuration untouched."""
    parser = argparse.ArgumentParser(description="FastMCP Container Lifecycle Manager")
    parser.add_argument(
        "--backend", default=None, help="Container backend (docker or swarm)"
    )
    parser.add_argument("--host", default=None, help="Server host")
    parser.add_argument("--port", type=int, default=None, help="Server port")
    parser.add_argument("--config", default=None, help="Configuration file path")
    parser.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration and exit"
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    logger = _setup_logging_system(args)

    try:
        config = _load_and_configure(args, logger)
        if config is None:  # Validation-only mode
            return
        server = ContainerMCPServer(config)
    except ConfigurationError as e:
        logger.error("Invalid configuration", error=str(e))
        sys.exit(1)

    _run_server(server, logger)


def _setup_logging_system(args: argparse.Namespace):
    """Setup logging, falling back to console-only output if the log directory is unusable."""
    log_level = args.log_level or os.getenv("LOG_LEVEL", "INFO")
    log_dir: Path | None = Path(os.getenv("LOG_DIR", "logs"))

    try:
        max_file_size_mb = int(os.getenv("LOG_FILE_SIZE_MB", "10"))
        if max_file_size_mb < 1 or max_file_size_mb > 100:
            max_file_size_mb = 10
    except ValueError:
        max_file_size_mb = 10

    try:
        setup_logging(log_dir=log_dir, log_level=log_level, max_file_size_mb=max_file_size_mb)
    except OSError as e:
        print(f"Unable to use log directory {log_dir} ({e}), using console-only logging")
        setup_logging(log_dir=None, log_level=log_level)
    return get_server_logger()


def _load_and_configure(args: argparse.Namespace, logger) -> ContainerMCPConfig | None:
    """Load configuration and apply CLI overrides; returns None in validation-only mode."""
    config = load_config(args.config)

    if args.backend:
        config.backend = args.backend
    if args.host:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.log_level:
        config.server.log_level = args.log_level

    if args.validate_config:
        create_backend(config)
        logger.info(
            "Configuration is valid",
            config_file=config.config_file,
            backend=config.backend,
            docker_url=config.docker_base_url,
        )
        return None

    return config


def _run_server(server: ContainerMCPServer, logger) -> None:
    """Run server with error handling."""
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error("Server error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
