"""
Interval conflict detection.

A single predicate shared by availability listing, lock acquisition,
booking and reschedule, so "looks free" and "is free" never disagree.
Intervals are half-open: an appointment ending at 10:30 does not
conflict with one starting at 10:30.
"""

from typing import Iterable, Optional, Protocol


class Interval(Protocol):
    start_time: int
    end_time: int


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open overlap test for [a_start, a_end) and [b_start, b_end)."""
    return a_start < b_end and b_start < a_end


def find_conflict(
    start: int, end: int, blocked: Iterable[Interval]
) -> Optional[Interval]:
    """Return the first blocked interval that overlaps [start, end), if any."""
    for item in blocked:
        if overlaps(start, end, item.start_time, item.end_time):
            return item
    return None


def has_conflict(start: int, end: int, blocked: Iterable[Interval]) -> bool:
    return find_conflict(start, end, blocked) is not None
