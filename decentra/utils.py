"""Utility functions for the deCentra client.

This module provides helpers for nanosecond timestamp handling, display
formatting, and small collection transforms.

Remote timestamps are 64-bit nanosecond counts since the epoch. They can
exceed the exact-integer range of a float, so every conversion divides with
integer arithmetic before a ``datetime`` is built.
"""

from datetime import UTC, datetime
from typing import Any

from decentra.config import PostVisibility

NANOS_PER_MILLI = 1_000_000

VISIBILITY_LABELS: dict[PostVisibility, str] = {
    PostVisibility.PUBLIC: "Public",
    PostVisibility.FOLLOWERS_ONLY: "Followers only",
    PostVisibility.UNLISTED: "Unlisted",
}


def utc_now() -> datetime:
    """Get current UTC timestamp as timezone-aware datetime."""
    return datetime.now(UTC)


def timestamp_to_millis(timestamp_ns: int) -> int:
    """Convert a nanosecond timestamp to whole milliseconds.

    Args:
        timestamp_ns: Nanoseconds since epoch

    Returns:
        Milliseconds since epoch (floor division)

    Example:
        >>> timestamp_to_millis(1_700_000_000_123_456_789)
        1700000000123
    """
    return int(timestamp_ns) // NANOS_PER_MILLI


def timestamp_to_datetime(timestamp_ns: int) -> datetime:
    """Convert a nanosecond timestamp to a UTC datetime.

    Example:
        >>> timestamp_to_datetime(1_700_000_000_000_000_000).year
        2023
    """
    millis = timestamp_to_millis(timestamp_ns)
    seconds, remainder_ms = divmod(millis, 1000)
    return datetime.fromtimestamp(seconds, tz=UTC).replace(microsecond=remainder_ms * 1000)


def datetime_to_timestamp(dt: datetime) -> int:
    """Convert a datetime to a nanosecond timestamp (millisecond precision).

    Naive datetimes are treated as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    delta = dt - datetime(1970, 1, 1, tzinfo=UTC)
    millis = (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000
    return millis * NANOS_PER_MILLI


def format_engagement_count(count: int) -> str:
    """Format a like/comment/follower count for display.

    Example:
        >>> format_engagement_count(999)
        '999'
        >>> format_engagement_count(1_500)
        '1.5K'
        >>> format_engagement_count(2_300_000)
        '2.3M'
    """
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def relative_time(timestamp_ns: int, now: datetime | None = None) -> str:
    """Describe how long ago ``timestamp_ns`` was.

    Returns ``now``, ``<n>m``, ``<n>h``, ``<n>d`` for the last week and an
    ISO date beyond that.
    """
    then = timestamp_to_datetime(timestamp_ns)
    now = now or utc_now()
    diff_secs = int((now - then).total_seconds())
    diff_mins = diff_secs // 60
    diff_hours = diff_mins // 60
    diff_days = diff_hours // 24

    if diff_secs < 60:
        return "now"
    if diff_mins < 60:
        return f"{diff_mins}m"
    if diff_hours < 24:
        return f"{diff_hours}h"
    if diff_days < 7:
        return f"{diff_days}d"
    return then.date().isoformat()


def redact_token(token: str | None) -> str:
    """Redact sensitive tokens or principals for safe logging.

    Example:
        >>> redact_token("abcdefghijklmnop")
        'abcdefgh...mnop'
        >>> redact_token("short")
        '***'
        >>> redact_token(None)
        'None'
    """
    if not token:
        return "None"
    return f"{token[:8]}...{token[-4:]}" if len(token) > 12 else "***"


def chunk_list(items: list[Any], chunk_size: int) -> list[list[Any]]:
    """Split list into chunks of specified size.

    Example:
        >>> chunk_list([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [items[i : i + chunk_size] for i in range(0, len(items), chunk_size)]


def normalize_id(id_value: str | int | None) -> str | None:
    """Normalize an entity id to its string key form.

    Example:
        >>> normalize_id(123)
        '123'
        >>> normalize_id(None) is None
        True
    """
    if id_value is None:
        return None
    return str(id_value)


def unique_in_order(values: list[Any]) -> list[Any]:
    """Deduplicate while keeping first-seen order.

    Example:
        >>> unique_in_order(["b", "a", "b", "c"])
        ['b', 'a', 'c']
    """
    return list(dict.fromkeys(values))


def visibility_label(visibility: PostVisibility) -> str:
    """Human-readable label for a post visibility."""
    return VISIBILITY_LABELS[visibility]


def visibility_from_label(label: str) -> PostVisibility:
    """Parse a visibility from its label or wire tag, case-insensitively.

    Example:
        >>> visibility_from_label("followers only")
        <PostVisibility.FOLLOWERS_ONLY: 'FollowersOnly'>

    Raises:
        ValueError: If ``label`` names no visibility
    """
    wanted = label.strip().lower()
    for visibility, text in VISIBILITY_LABELS.items():
        if wanted in (text.lower(), visibility.value.lower()):
            return visibility
    raise ValueError(f"Unknown visibility: {label!r}")
