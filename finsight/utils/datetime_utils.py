"""
Datetime Utility Functions

Centralized timestamp parsing and calendar helpers for transaction preprocessing.

Handles common patterns:
- ISO timestamps with 'Z' suffix, naive timestamps (assumed UTC), epoch milliseconds
- Day spans between the first and last transaction
- Week-of-year and season buckets used by the spending pattern analysis
"""

import math
from datetime import UTC, datetime


def parse_timestamp(value: str | int | float | datetime | None) -> datetime | None:
    """
    Parse a transaction timestamp into a timezone-aware UTC datetime.

    Args:
        value: ISO 8601 string ("2026-02-10T10:00:00Z", "2026-02-10"), epoch
            milliseconds, or a datetime (naive values are treated as UTC)

    Returns:
        datetime in UTC, or None if input is None or empty

    Raises:
        ValueError: If the value cannot be parsed

    Examples:
        >>> parse_timestamp("2026-02-10T10:00:00Z")
        datetime.datetime(2026, 2, 10, 10, 0, tzinfo=datetime.timezone.utc)

        >>> parse_timestamp(None)
        None
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValueError(f"Timestamp must be a string, number or datetime, got {type(value)}")
    elif isinstance(value, int | float):
        if not math.isfinite(value):
            raise ValueError(f"Invalid epoch timestamp: {value}")
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    elif isinstance(value, str):
        try:
            # Replace 'Z' with '+00:00' for ISO format compatibility
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid timestamp format: {value}") from e
    else:
        raise ValueError(f"Timestamp must be a string, number or datetime, got {type(value)}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def epoch_millis(moment: datetime | None = None) -> int:
    """Milliseconds since the Unix epoch (default: now)."""
    moment = moment or datetime.now(UTC)
    return int(moment.timestamp() * 1000)


def day_span(start: datetime, end: datetime, count: int) -> int:
    """
    Number of days covered by a transaction set, never below 1.

    A set with fewer than 2 transactions spans 1 day; otherwise the span is the
    elapsed time rounded up to whole days.
    """
    if count < 2:
        return 1
    days = (end - start).total_seconds() / 86400
    return max(1, math.ceil(days))


def week_of_year(moment: datetime) -> int:
    """
    ISO 8601 week number (1-53).

    Early January days can belong to week 52 or 53 of the previous ISO year and
    late December days to week 1 of the next.
    """
    return moment.isocalendar().week


def day_of_week(moment: datetime) -> int:
    """Day of week with 0 = Sunday, 6 = Saturday."""
    return (moment.weekday() + 1) % 7


def season(month_index: int) -> str:
    """
    Season for a 0-based month index (0 = January).

    Winter covers December through February.
    """
    if month_index in (11, 0, 1):
        return "Winter"
    if 2 <= month_index <= 4:
        return "Spring"
    if 5 <= month_index <= 7:
        return "Summer"
    return "Fall"
