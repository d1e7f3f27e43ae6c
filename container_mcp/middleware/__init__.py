"""FastMCP middleware for Container MCP server.

- LoggingMiddleware: Structured request/response logging (console + middleware.log)
- ErrorHandlingMiddleware: Error tracking and severity-aware error logging
"""

from .error_handling import ErrorHandlingMiddleware
from .logging import LoggingMiddleware

__all__ = [
    "LoggingMiddleware",
    "ErrorHandlingMiddleware",
]
