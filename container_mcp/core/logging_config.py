"""structlog setup for Container MCP: console output plus per-area JSON log files."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory, ProcessorFormatter

# stdlib logger name -> file written under the log directory
LOG_FILES = {
    "server": "server.log",
    "middleware": "middleware.log",
}


def _json_file_handler(path: Path, level: int, max_bytes: int) -> logging.Handler:
    # backupCount=0 truncates the file once it reaches max_bytes
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=0, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(ProcessorFormatter(processor=structlog.processors.JSONRenderer()))
    return handler


def setup_logging(
    log_dir: Path | str | None = Path("logs"),
    log_level: str | None = None,
    max_file_size_mb: int = 10,
) -> None:
    """Route structlog events through stdlib handlers.

    Console output is pretty-printed on a TTY and JSON otherwise. With a
    ``log_dir``, lifecycle events also go to server.log and MCP request
    tracking to middleware.log.

    Args:
        log_dir: Directory for log files (``None`` for console only)
        log_level: Log level (defaults to LOG_LEVEL env var or INFO)
        max_file_size_mb: Max file size before truncation
    """
    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    console_renderer = (
        structlog.dev.ConsoleRenderer() if sys.stdout.isatty() else structlog.processors.JSONRenderer()
    )
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(ProcessorFormatter(processor=console_renderer))
    root_logger.addHandler(console)

    written: dict[str, str] = {}
    if log_dir is not None:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        for logger_name, file_name in LOG_FILES.items():
            named = logging.getLogger(logger_name)
            named.handlers.clear()
            named.addHandler(
                _json_file_handler(directory / file_name, level, max_file_size_mb * 1024 * 1024)
            )
            written[f"{logger_name}_log"] = str(directory / file_name)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.TimeStamper(fmt="iso"),
            ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=True,
    )

    get_server_logger().info(
        "Logging system initialized", log_level=log_level, max_file_size_mb=max_file_size_mb, **written
    )


def get_server_logger() -> Any:
    """Logger for lifecycle and backend events (server.log)."""
    return structlog.get_logger("server")


def get_middleware_logger() -> Any:
    """Logger for MCP request tracking (middleware.log)."""
    return structlog.get_logger("middleware")
