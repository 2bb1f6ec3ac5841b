"""Shared time and phone helpers used across the scheduling core."""

import math
import re
from datetime import date, datetime, timedelta, timezone

MINUTES_PER_DAY = 1440
DATE_FORMAT = "%Y-%m-%d"


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("+90 532 123 45 67")
        '+905321234567'
        >>> normalize_phone("(0532) 123-4567")
        '05321234567'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def time_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes from midnight.

    >>> time_to_minutes("09:00")
    540
    >>> time_to_minutes("24:00")
    1440
    """
    hours, minutes = value.strip().split(":")
    total = int(hours) * 60 + int(minutes)
    if not 0 <= int(minutes) < 60 or not 0 <= total <= MINUTES_PER_DAY:
        raise ValueError(f"Invalid time of day: {value!r}")
    return total


def minutes_to_time(minutes: int) -> str:
    """Convert minutes from midnight to "HH:MM".

    >>> minutes_to_time(870)
    '14:30'
    """
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def round_up_to_step(minutes: int, step: int) -> int:
    """Round a duration up to the next multiple of ``step``.

    >>> round_up_to_step(50, 15)
    60
    """
    return int(math.ceil(minutes / step)) * step


def parse_date(value: str) -> date:
    """Parse a "YYYY-MM-DD" string, raising ValueError on bad input."""
    return datetime.strptime(value.strip(), DATE_FORMAT).date()


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def canonical_date(value: str) -> str:
    """Zero-padded form of a date string, so "2026-3-2" and "2026-03-02" share one key.

    >>> canonical_date("2026-3-2")
    '2026-03-02'
    """
    return format_date(parse_date(value))


def dates_between(start: str, end: str) -> list[str]:
    """Inclusive list of "YYYY-MM-DD" strings from start to end."""
    current = parse_date(start)
    last = parse_date(end)
    result = []
    while current <= last:
        result.append(format_date(current))
        current += timedelta(days=1)
    return result


def weekday_name(value: str) -> str:
    """Lower-case English weekday for a "YYYY-MM-DD" string."""
    return parse_date(value).strftime("%A").lower()


def local_timezone(utc_offset_minutes: int) -> timezone:
    return timezone(timedelta(minutes=utc_offset_minutes))


def local_datetime(day: str, minutes: int, utc_offset_minutes: int) -> datetime:
    """Aware datetime for a local civil date plus minutes from midnight."""
    midnight = datetime.combine(parse_date(day), datetime.min.time())
    return (midnight + timedelta(minutes=minutes)).replace(
        tzinfo=local_timezone(utc_offset_minutes)
    )


def local_now_parts(now: datetime, utc_offset_minutes: int) -> tuple[str, int]:
    """Split an aware ``now`` into (local date string, local minutes from midnight)."""
    local = now.astimezone(local_timezone(utc_offset_minutes))
    return format_date(local.date()), local.hour * 60 + local.minute


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
