"""Parse raw daemon log output into structured log entries.

Docker log output is inconsistently framed: lines may carry an explicit
stream tag, a multiplexed-frame header made of control bytes, only a
timestamp, or nothing at all. Each line is run through an ordered chain of
matchers and the first one that recognises it wins. Lines that carry only a
timestamp have no stream marker, so their stream is guessed from whether the
message mentions "error".
"""

import re
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from ..models.container import LogEntry

logger = structlog.get_logger()

TAGGED_LINE_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d+Z)\s+(stdout|stderr)\s+(.+)"
)
EMBEDDED_TIMESTAMP_RE = re.compile(r"(\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}[.,]\d+Z?)")
TIMESTAMPED_LINE_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z)\s+(.*)$"
)
CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f]")
WHITESPACE_RE = re.compile(r"\s+")

# Sentinel returned by a matcher that claimed the line but produced nothing
DISCARD = object()

LineMatcher = Callable[[str], object]


def strip_control_chars(text: str) -> str:
    return CONTROL_CHARS_RE.sub("", text)


def normalize_timestamp(raw: str) -> str:
    """``2024-01-01T00:00:00,5Z`` -> ``2024-01-01 00:00:00.5``."""
    return raw.replace("T", " ", 1).replace(",", ".").replace("Z", "")


def now_timestamp() -> str:
    """Current UTC wall-clock time in log display format."""
    return datetime.now(UTC).isoformat(sep=" ", timespec="milliseconds").replace("+00:00", "")


def guess_stream(message: str) -> str:
    return "stderr" if "error" in message.lower() else "stdout"


def match_tagged(line: str) -> LogEntry | None:
    """``<timestamp> stdout|stderr <message>``."""
    match = TAGGED_LINE_RE.match(line)
    if not match:
        return None
    timestamp, stream, message = match.groups()
    return LogEntry(
        timestamp=normalize_timestamp(timestamp),
        stream=stream,
        message=strip_control_chars(message).strip(),
    )


def match_framed(line: str) -> LogEntry | object | None:
    """Line prefixed by a multiplexed-stream frame header (control bytes)."""
    if ord(line[0]) > 31:
        return None

    match = EMBEDDED_TIMESTAMP_RE.search(line)
    if not match:
        return DISCARD

    message = strip_control_chars(line[match.end() :]).strip()
    return LogEntry(
        timestamp=normalize_timestamp(match.group(1)),
        stream="stderr" if "stderr" in line else "stdout",
        message=message,
    )


def match_timestamped(line: str) -> LogEntry | None:
    """``<timestamp> <message>`` as returned by the SDK once frames are stripped."""
    match = TIMESTAMPED_LINE_RE.match(line)
    if not match:
        return None
    timestamp, message = match.groups()
    message = strip_control_chars(message).strip()
    return LogEntry(
        timestamp=normalize_timestamp(timestamp),
        stream=guess_stream(message),
        message=message,
    )


def match_fallback(line: str) -> LogEntry:
    message = WHITESPACE_RE.sub(" ", CONTROL_CHARS_RE.sub(" ", line)).strip()
    return LogEntry(timestamp=now_timestamp(), stream=guess_stream(message), message=message)


MATCHERS: tuple[LineMatcher, ...] = (
    match_tagged,
    match_framed,
    match_timestamped,
    match_fallback,
)


def parse_line(line: str) -> LogEntry | None:
    """Run one non-empty line through the matcher chain."""
    for matcher in MATCHERS:
        result = matcher(line)
        if isinstance(result, LogEntry):
            return result
        if result is DISCARD:
            return None
    return None


def parse_logs(raw: str) -> list[LogEntry]:
    """Parse raw log text into entries, skipping lines that cannot be parsed.

    Entries whose message is empty, or is the lone ``Z`` left over from a
    split timestamp, are dropped.
    """
    entries: list[LogEntry] = []
    for line in raw.split("\n"):
        if not line.strip():
            continue
        try:
            entry = parse_line(line)
        except Exception as e:
            logger.warning("Failed to parse log line", line=line[:200], error=str(e))
            continue
        if entry is None or not entry.message or entry.message == "Z":
            continue
        entries.append(entry)
    return entries
