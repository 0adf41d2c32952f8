"""
Utility functions and classes shared by the engine and the CLI.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class Colors:
    """ANSI color codes for terminal output."""

    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"


def now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with or without a trailing Z), epoch
    milliseconds, and datetime objects. Naive values are taken as UTC.

    Args:
        value: Raw timestamp.

    Returns:
        datetime in UTC, or None if the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_count(count: int) -> str:
    """
    Format a record count for terminal output.

    Args:
        count: Number of records.

    Returns:
        Formatted string (e.g., "1,234" or "1.2M").
    """
    if count < 1_000_000:
        return f"{count:,}"
    return f"{count / 1_000_000:.1f}M"
