"""Container MCP: container lifecycle management over Docker and Docker Swarm."""

__version__ = "0.1.0"
