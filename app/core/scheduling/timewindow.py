"""
Time window parsing.

Normalises the time formats clients send (12-hour with meridiem, 24-hour
clock, or a full ISO timestamp) into an absolute [start, end) pair.
"""

import re
from datetime import date, datetime, time
from typing import Optional, Union

from app.core.scheduling.errors import InvalidTimeFormat, InvalidTimeRange

TimeInput = Union[str, datetime]

_TWELVE_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
_TWENTY_FOUR_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def _to_24_hour(hour: int, meridiem: str) -> int:
    """Convert a 1-12 clock hour to 0-23."""
    if meridiem == "PM":
        return hour if hour == 12 else hour + 12
    return 0 if hour == 12 else hour


def _strip_tz(value: datetime) -> datetime:
    """Aware timestamps become naive local time."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_time(raw: TimeInput, day: date) -> datetime:
    """Parse a single time value anchored to ``day``.

    Args:
        raw: "10:00 AM", "14:30", an ISO timestamp string, or a datetime
        day: Calendar day that clock times are anchored to

    Returns:
        Naive datetime

    Raises:
        InvalidTimeFormat: If the value matches no accepted format
    """
    if isinstance(raw, datetime):
        return _strip_tz(raw)
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidTimeFormat(raw)

    midnight = datetime.combine(day, time.min)

    match = _TWELVE_HOUR.match(raw)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if not (1 <= hour <= 12 and 0 <= minute <= 59):
            raise InvalidTimeFormat(raw)
        hour = _to_24_hour(hour, match.group(3).upper())
        return midnight.replace(hour=hour, minute=minute)

    match = _TWENTY_FOUR_HOUR.match(raw)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise InvalidTimeFormat(raw)
        return midnight.replace(hour=hour, minute=minute)

    try:
        return _strip_tz(datetime.fromisoformat(raw.strip()))
    except ValueError:
        raise InvalidTimeFormat(raw) from None


def parse_window(
    start_raw: TimeInput,
    end_raw: TimeInput,
    day: date,
) -> tuple[datetime, datetime]:
    """Parse a start/end pair into a half-open window on ``day``.

    Raises:
        InvalidTimeFormat: If either bound cannot be parsed
        InvalidTimeRange: If end is not after start
    """
    start = parse_time(start_raw, day)
    end = parse_time(end_raw, day)

    if end <= start:
        raise InvalidTimeRange()

    return start, end


def day_of(value: Optional[Union[str, date, datetime]]) -> date:
    """Normalise a requested day to a calendar date (today when absent)."""
    if value is None or value == "":
        return date.today()
    if isinstance(value, datetime):
        return _strip_tz(value).date()
    if isinstance(value, date):
        return value
    try:
        return _strip_tz(datetime.fromisoformat(value.strip())).date()
    except (ValueError, AttributeError):
        raise InvalidTimeFormat(value) from None


def windows_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Whether [start_a, end_a) and [start_b, end_b) overlap.

    Touching windows (one ends exactly when the other starts) do not.
    """
    return start_a < end_b and end_a > start_b
