"""Logging middleware for Container MCP server using FastMCP Middleware base class."""

import time
from typing import Any

from fastmcp.server.middleware import Middleware, MiddlewareContext

from ..core.logging_config import get_middleware_logger

SENSITIVE_KEYWORDS = (
    "password",
    "passwd",
    "token",
    "secret",
    "credential",
    "api_key",
    "private_key",
    "auth",
)

# Mappings whose values are always redacted (container environments carry secrets)
REDACTED_MAPPINGS = {"env", "environment"}


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name suggests sensitive data."""
    field_lower = field_name.lower()
    return any(keyword in field_lower for keyword in SENSITIVE_KEYWORDS)


class LoggingMiddleware(Middleware):
    """FastMCP middleware for request/response logging.

    Logs every MCP message to the console and middleware.log with sanitized
    parameters, outcome and duration.
    """

    def __init__(self, include_payloads: bool = True, max_payload_length: int = 1000):
        """Initialize logging middleware.

        Args:
            include_payloads: Whether to include request payloads in logs
            max_payload_length: Maximum length for payload strings before truncation
        """
        self.logger = get_middleware_logger()
        self.include_payloads = include_payloads
        self.max_payload_length = max_payload_length

    async def on_message(self, context: MiddlewareContext, call_next):
        start_time = time.perf_counter()

        log_data: dict[str, Any] = {
            "method": context.method,
            "source": context.source,
            "message_type": context.type,
        }
        if self.include_payloads and hasattr(context.message, "__dict__"):
            log_data["params"] = self._sanitize_message(context.message)

        self.logger.info("MCP request started", **log_data)

        try:
            result = await call_next(context)
        except Exception as e:
            self.logger.error(
                "MCP request failed",
                method=context.method,
                success=False,
                duration_ms=self._elapsed_ms(start_time),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        self.logger.info(
            "MCP request completed",
            method=context.method,
            success=True,
            duration_ms=self._elapsed_ms(start_time),
        )
        return result

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.perf_counter() - start_time) * 1000, 2)

    def _sanitize_message(self, message: Any) -> dict[str, Any]:
        """Sanitize message attributes for safe logging."""
        return {
            key: self._sanitize_value(key, value)
            for key, value in vars(message).items()
            if not key.startswith("_")
        }

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if is_sensitive_field(key):
            return "[REDACTED]"
        if key.lower() in REDACTED_MAPPINGS and isinstance(value, dict):
            return {name: "[REDACTED]" for name in value}
        if isinstance(value, dict):
            return {k: self._sanitize_value(str(k), v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._sanitize_value(key, item) for item in value]
        if isinstance(value, str) and len(value) > self.max_payload_length:
            return value[: self.max_payload_length] + "... [TRUNCATED]"
        return value
