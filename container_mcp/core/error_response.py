"""RFC 7807 problem responses for MCP tool results.

Tools never raise to the client; failures come back as a problem dict with
``success: False`` alongside the problem type, title and any operation context.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import BackendError, ValidationError


class ProblemDetail(BaseModel):
    """Problem body returned by a failed tool call."""

    success: bool = False
    error: str = Field(description="Message of the underlying failure")
    type: str | None = Field(default=None, description="Problem type path")
    title: str | None = Field(default=None, description="Summary of the problem type")
    detail: str | None = Field(default=None, description="Failure message with its context")
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


class ContainerMCPErrorResponse:
    """Builds problem responses from lifecycle failures."""

    PROBLEM_TYPES: dict[str, str] = {
        "backend-error": "Backend Operation Failed",
        "backend-unavailable": "Container Daemon Unreachable",
        "container-not-found": "Container Not Found",
        "validation-error": "Input Validation Failed",
        "configuration-error": "Configuration Error",
    }

    # Extra fields may not shadow the problem body
    RESERVED_FIELDS = frozenset(ProblemDetail.model_fields)

    @classmethod
    def create_error(
        cls,
        error_message: str,
        problem_type: str | None = None,
        detail: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Problem dict for ``error_message``.

        ``problem_type`` is a key of PROBLEM_TYPES; ``context`` entries are
        merged in as extra members unless they collide with the problem body.
        """
        problem = ProblemDetail(error=error_message, detail=detail)
        if problem_type in cls.PROBLEM_TYPES:
            problem.type = f"/problems/{problem_type}"
            problem.title = cls.PROBLEM_TYPES[problem_type]

        response = problem.model_dump(exclude_none=True)
        for key, value in (context or {}).items():
            if key not in cls.RESERVED_FIELDS:
                response[key] = value
        return response

    @classmethod
    def backend_error(cls, error: BackendError, operation: str | None = None) -> dict[str, Any]:
        """Problem response for a failed daemon call, keyed on its status code."""
        problem_type = {404: "container-not-found", 503: "backend-unavailable"}.get(
            error.status_code, "backend-error"
        )
        return cls.create_error(
            error.message,
            problem_type,
            detail=f"{error.context}: {error.message}" if error.context else error.message,
            context={
                "operation": operation,
                "context": error.context,
                "status_code": error.status_code,
            },
        )

    @classmethod
    def validation_error(
        cls, error: ValidationError | PydanticValidationError, operation: str | None = None
    ) -> dict[str, Any]:
        """Problem response for a request rejected before reaching the daemon."""
        context: dict[str, Any] = {"operation": operation, "status_code": 400}
        if isinstance(error, PydanticValidationError):
            context["errors"] = [
                {"field": ".".join(str(part) for part in err["loc"]), "reason": err["msg"]}
                for err in error.errors()
            ]
            message = f"{error.error_count()} validation error(s) for {error.title}"
        else:
            message = str(error)
        return cls.create_error(message, "validation-error", detail=message, context=context)

    @classmethod
    def generic_error(cls, error_message: str, context: dict[str, Any] | None = None) -> dict[str, Any]:
        """Problem response for anything that is not a lifecycle failure."""
        return cls.create_error(error_message, context={"status_code": 500, **(context or {})})
