"""
Shared utility functions for Jamf Device Manager.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")

CHECK_IN_BUCKETS = ("Last 24h", "24-48h", "48h+", "Never")


def parse_line_delimited_file(path: str) -> List[str]:
    """
    Parse a file containing one item per line, stripping whitespace and ignoring empty lines.

    Args:
        path: Path to the file to parse

    Returns:
        List of non-empty strings from the file
    """
    tokens: List[str] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        val = line.strip()
        if val:
            tokens.append(val)
    return tokens


def parse_jamf_datetime(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse datetime strings from Jamf API which can be in multiple formats.

    Jamf returns dates in various formats:
    - Advanced Search display fields: "2025-03-15 05:49:00"
    - ISO8601: "2025-03-15T05:49:00Z" or "2025-03-15T05:49:00+00:00"
    - US format: "03/15/2025 05:49 AM"
    - Epoch timestamps: "1710486540000" (milliseconds since epoch)

    Returns:
        datetime object with UTC timezone, or None if parsing fails

    Examples:
        >>> parse_jamf_datetime("2025-03-15 05:49:00")
        datetime(2025, 3, 15, 5, 49, tzinfo=timezone.utc)
    """
    if not date_str:
        return None
    date_str = date_str.strip()

    for fmt in ("%Y-%m-%d %H:%M:%S", "%m/%d/%Y %I:%M:%S %p", "%m/%d/%Y %I:%M %p"):
        try:
            return datetime.strptime(date_str, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            pass

    try:
        dt = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        pass

    # Epoch timestamp (milliseconds)
    if date_str.isdigit():
        try:
            return datetime.fromtimestamp(int(date_str) / 1000, tz=timezone.utc)
        except (ValueError, OSError, OverflowError):
            pass
    return None


def parse_check_in(value: Optional[str]) -> Optional[datetime]:
    return parse_jamf_datetime(value) if isinstance(value, str) else None


def check_in_bucket(last_check_in: Optional[datetime], now: datetime) -> str:
    """Classify a last check-in time into one of CHECK_IN_BUCKETS."""
    if last_check_in is None:
        return "Never"
    hours = (now - last_check_in).total_seconds() / 3600
    if hours < 24:
        return "Last 24h"
    if hours < 48:
        return "24-48h"
    return "48h+"


def normalize_os_version(version: str) -> str:
    """
    Drop a zero patch component.

    Examples:
        >>> normalize_os_version("15.5.0")
        '15.5'
        >>> normalize_os_version("15.5.1")
        '15.5.1'
    """
    parts = version.split(".")
    if len(parts) == 3 and parts[2] == "0":
        return f"{parts[0]}.{parts[1]}"
    return version


def version_sort_key(version: str):
    """Sort key that orders numeric components numerically ("15.10" after "15.9")."""
    key = []
    for part in version.split("."):
        key.append((0, int(part), "") if part.isdigit() else (1, 0, part))
    return key


def generate_random_pin() -> str:
    """Random six digit lock PIN in the range 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """
    Yield consecutive slices of ``items`` of at most ``size`` elements.

    Examples:
        >>> list(chunked([1, 2, 3, 4, 5], 2))
        [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def dedupe_preserving_order(values: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
