"""Error handling middleware for Container MCP server."""

from collections import defaultdict
from typing import Any

from fastmcp.server.middleware import Middleware, MiddlewareContext

from ..core.exceptions import BackendError, ValidationError
from ..core.logging_config import get_middleware_logger
from .logging import is_sensitive_field


class ErrorHandlingMiddleware(Middleware):
    """FastMCP middleware for error tracking.

    Counts errors per type and method, logs them with request context at a
    level matching their severity, then re-raises.
    """

    def __init__(self, include_traceback: bool = True, track_error_stats: bool = True):
        self.logger = get_middleware_logger()
        self.include_traceback = include_traceback
        self.track_error_stats = track_error_stats

        self.error_stats: dict[str, int] = defaultdict(int)
        self.method_errors: dict[str, int] = defaultdict(int)

    async def on_message(self, context: MiddlewareContext, call_next):
        try:
            return await call_next(context)
        except Exception as e:
            self._handle_error(e, context)
            raise

    def _handle_error(self, error: Exception, context: MiddlewareContext) -> None:
        error_type = type(error).__name__
        method = context.method or "unknown"

        error_data: dict[str, Any] = {
            "error_type": error_type,
            "error_message": str(error),
            "method": method,
            "source": context.source,
            "message_type": context.type,
        }
        if isinstance(error, BackendError):
            error_data.update(backend_context=error.context, status_code=error.status_code)

        if self.track_error_stats:
            error_key = f"{error_type}:{method}"
            self.error_stats[error_key] += 1
            self.method_errors[method] += 1
            error_data.update(
                error_occurrence_count=self.error_stats[error_key],
                method_error_count=self.method_errors[method],
            )

        if hasattr(context.message, "__dict__"):
            error_data["message_context"] = {
                key: str(value)[:100]
                for key, value in vars(context.message).items()
                if not key.startswith("_") and not is_sensitive_field(key)
            }

        if self._is_critical_error(error):
            self.logger.critical(
                "Critical error in MCP request", **error_data, exc_info=self.include_traceback
            )
        elif self._is_warning_level_error(error):
            self.logger.warning("Warning-level error in MCP request", **error_data)
        else:
            self.logger.error("Error in MCP request", **error_data, exc_info=self.include_traceback)

    @staticmethod
    def _is_critical_error(error: Exception) -> bool:
        return isinstance(error, SystemError | MemoryError | RecursionError)

    @staticmethod
    def _is_warning_level_error(error: Exception) -> bool:
        """Client mistakes and transient connectivity problems."""
        if isinstance(error, BackendError):
            return error.status_code < 500 or error.status_code == 503
        return isinstance(error, ValidationError | TimeoutError | ConnectionError)

    def get_error_statistics(self) -> dict[str, Any]:
        """Error counts by type and method."""
        if not self.track_error_stats:
            return {"error_tracking": "disabled"}

        top_errors = sorted(self.error_stats.items(), key=lambda x: x[1], reverse=True)[:10]
        top_error_methods = sorted(self.method_errors.items(), key=lambda x: x[1], reverse=True)[:10]
        return {
            "total_errors": sum(self.error_stats.values()),
            "unique_error_types": len(self.error_stats),
            "top_errors": top_errors,
            "top_error_methods": top_error_methods,
            "error_distribution": dict(self.error_stats),
        }

    def reset_statistics(self) -> None:
        self.error_stats.clear()
        self.method_errors.clear()
