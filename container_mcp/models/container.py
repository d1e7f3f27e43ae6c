"""Container-related data models shared by every backend."""

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from .enums import LogStream

# Type aliases for string constraints
ResourceName = Annotated[str, StringConstraints(pattern=r"^[a-z0-9_-]+$")]
ImageRef = Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]


class MCPModel(BaseModel):
    """Base model with camelCase wire names and common dump settings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def model_dump(self, **kwargs) -> dict[str, Any]:
        """Convert to dict with exclude_none and camelCase keys by default."""
        kwargs.setdefault("exclude_none", True)
        kwargs.setdefault("by_alias", True)
        return super().model_dump(**kwargs)


class ContainerInfo(MCPModel):
    """Normalized lifecycle snapshot of a container or service."""

    id: str
    name: str
    image: str
    status: str
    ports: list[str] = Field(default_factory=list)
    created_at: str = Field(description="Creation timestamp in ISO 8601 format")
    labels: dict[str, str] | None = None
    env: dict[str, str] | None = None


class LogEntry(MCPModel):
    """Single parsed log line."""

    timestamp: str = Field(description="Space separated date/time without zone marker")
    message: str
    stream: LogStream = "stdout"


class PortBinding(MCPModel):
    """Host port to container port publication rule."""

    host_port: Annotated[int, Field(ge=1, description="Host port number")]
    container_port: Annotated[int, Field(ge=1, le=65535, description="Container port number")]
    protocol: str = "tcp"


class VolumeBinding(MCPModel):
    """Host path bind-mounted into the container."""

    host_path: str
    container_path: str
    mode: str = "rw"


class DeployConfig(MCPModel):
    """Declarative deployment request.

    Host port uniqueness is checked by the backends at deploy time, not here,
    so that the violation is reported before any daemon call is made.
    """

    image: ImageRef
    name: ResourceName | None = None
    env: dict[str, str] | None = None
    ports: list[PortBinding] | None = None
    volumes: list[VolumeBinding] | None = None
    replicas: int = Field(
        default=1, ge=1, le=20, description="Desired replicas (clustered backend only)"
    )
    network: ResourceName | None = None
    labels: dict[str, str] | None = None
    restart_policy: bool = True


class ListFilter(MCPModel):
    """Multi-field filter applied to list results."""

    id: str | None = Field(default=None, description="Substring of the container id")
    name: str | None = Field(default=None, description="Substring of the container name")
    image: str | None = Field(default=None, description="Substring of the image reference")
    status: str | None = Field(default=None, description="Exact status")
    ports: list[str] | None = Field(default=None, description="Ports that must all be published")
    created_from: datetime | None = None
    created_to: datetime | None = None
    labels: list[dict[str, str]] | None = None
    env: list[dict[str, str]] | None = None
