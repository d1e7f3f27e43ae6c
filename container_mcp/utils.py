"""Utility functions for Container MCP.

Helpers shared by the Docker and Swarm backends for rendering ports,
environment lists and timestamps in one consistent shape.
"""

import re
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta

_FRACTION_RE = re.compile(r"\.(\d+)")
_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h|d)$")
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def sort_ports(ports: Iterable[str]) -> list[str]:
    """Deduplicate port strings and order them by length, then lexicographically.

    Examples:
        >>> sort_ports(["8080:80/tcp", "80:80/tcp", "8080:80/tcp"])
        ['80:80/tcp', '8080:80/tcp']
    """
    return sorted({port for port in ports if port}, key=lambda port: (len(port), port))


def format_published_port(public_port: int | str | None, private_port: int | str | None) -> str:
    """Render a single-host port record as ``public:private``, omitting an empty side."""
    sides = [str(side) for side in (public_port, private_port) if side not in (None, "", 0)]
    return ":".join(sides)


def format_endpoint_port(
    published_port: int | None, target_port: int | None, protocol: str | None = None
) -> str:
    """Render a service endpoint port as ``published:target/proto`` or ``target/proto``."""
    protocol = protocol or "tcp"
    if published_port:
        return f"{published_port}:{target_port}/{protocol}"
    return f"{target_port}/{protocol}"


def format_env(env: Mapping[str, str] | None) -> list[str]:
    """Convert an environment mapping to ``KEY=VALUE`` entries."""
    if not env:
        return []
    return [f"{key}={value}" for key, value in env.items()]


def parse_env_list(entries: Iterable[str] | None) -> dict[str, str]:
    """Parse ``KEY=VALUE`` entries, splitting on the first ``=`` only."""
    env: dict[str, str] = {}
    for entry in entries or []:
        key, _, value = entry.partition("=")
        if key:
            env[key] = value
    return env


def to_iso8601(moment: datetime) -> str:
    """Format a datetime as UTC ISO 8601 with millisecond precision and ``Z`` suffix.

    Examples:
        >>> to_iso8601(datetime(2024, 1, 1, tzinfo=UTC))
        '2024-01-01T00:00:00.000Z'
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    moment = moment.astimezone(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_docker_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp as emitted by the daemon.

    The daemon uses nanosecond precision which ``datetime.fromisoformat`` does
    not accept, so the fraction is truncated to microseconds first.
    """
    if not value:
        return None
    normalized = value.strip().replace("Z", "+00:00")
    normalized = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), normalized, count=1)
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_since(since: str | None) -> datetime | int | float | str | None:
    """Convert a ``since`` value into a form accepted by the Docker SDK.

    Accepts Unix timestamps (``"1700000000"``), ISO 8601 timestamps and
    relative durations (``"10m"``, ``"2h"``). Anything else is returned as-is
    and left for the daemon to reject.
    """
    if since is None:
        return None
    value = since.strip()
    if not value:
        return None

    if re.fullmatch(r"\d+", value):
        return int(value)
    if re.fullmatch(r"\d+\.\d+", value):
        return float(value)

    if match := _DURATION_RE.match(value):
        amount, unit = match.groups()
        return datetime.now(UTC) - float(amount) * _DURATION_UNITS[unit]

    if parsed := parse_docker_timestamp(value):
        return parsed

    return since
