"""Core exceptions for container lifecycle operations."""


class ContainerMCPError(Exception):
    """Base exception for container lifecycle operations."""


class ValidationError(ContainerMCPError):
    """Deployment request failed validation before reaching the daemon."""


class BackendError(ContainerMCPError):
    """Daemon call failed or returned an unexpected shape."""

    def __init__(self, message: str, context: str | None = None, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.context = context
        self.status_code = status_code

    def to_dict(self) -> dict[str, str | int | None]:
        return {
            "message": self.message,
            "context": self.context,
            "status_code": self.status_code,
        }


class PartialFailure(ContainerMCPError):
    """One sub-operation of a fan-out failed; recorded, never escalated."""


class ConfigurationError(ContainerMCPError):
    """Configuration validation or loading failed."""
