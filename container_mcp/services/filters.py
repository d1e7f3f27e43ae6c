"""Client-side filtering of container listings.

Every populated field of a ``ListFilter`` is a constraint and a container
must satisfy all of them. Empty or absent fields impose nothing.
"""

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime

from ..models.container import ContainerInfo, ListFilter
from ..utils import parse_docker_timestamp


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def _matches_text(value: str, needle: str | None) -> bool:
    return not needle or needle in value


def _matches_ports(ports: list[str], required: list[str] | None) -> bool:
    return not required or set(required).issubset(ports)


def _matches_created(
    created_at: str, created_from: datetime | None, created_to: datetime | None
) -> bool:
    if created_from is None and created_to is None:
        return True
    created = parse_docker_timestamp(created_at)
    if created is None:
        return False
    if created_from is not None and created < _as_utc(created_from):
        return False
    if created_to is not None and created > _as_utc(created_to):
        return False
    return True


def _matches_pairs(
    values: Mapping[str, str] | None, matchers: list[dict[str, str]] | None
) -> bool:
    """Every key/value of every matcher must be present with that exact value."""
    if not matchers:
        return True
    return all(
        values is not None and key in values and values[key] == expected
        for matcher in matchers
        for key, expected in matcher.items()
    )


def matches_filter(container: ContainerInfo, list_filter: ListFilter) -> bool:
    """Return True when ``container`` satisfies every constraint of ``list_filter``."""
    return (
        _matches_text(container.id, list_filter.id)
        and _matches_text(container.name, list_filter.name)
        and _matches_text(container.image, list_filter.image)
        and (not list_filter.status or container.status == list_filter.status)
        and _matches_ports(container.ports, list_filter.ports)
        and _matches_created(
            container.created_at, list_filter.created_from, list_filter.created_to
        )
        and _matches_pairs(container.labels, list_filter.labels)
        and _matches_pairs(container.env, list_filter.env)
    )


def apply_filter(
    containers: Iterable[ContainerInfo], list_filter: ListFilter | None
) -> list[ContainerInfo]:
    """Keep the containers matching ``list_filter``; no filter keeps everything."""
    if list_filter is None:
        return list(containers)
    return [container for container in containers if matches_filter(container, list_filter)]
