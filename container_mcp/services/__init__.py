"""
Container MCP Services

Service layer between the MCP tools and the container backends.
"""

from .container import ContainerService  # noqa: F401
from .filters import apply_filter, matches_filter  # noqa: F401

__all__ = [
    "ContainerService",
    "apply_filter",
    "matches_filter",
]
