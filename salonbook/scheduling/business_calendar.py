"""
Business calendar resolution.

Turns a staff member's weekly schedule, date overrides and overtime into
the concrete working windows for one date:

    1. Base window: the staff weekday entry. If the staff member has no
       weekly schedule at all, the organization's business hours for that
       weekday are used instead.
    2. Override for the exact date replaces the base window entirely.
       ``day_off`` / ``time_off`` close the day; ``custom_hours`` sets new hours.
    3. Overtime windows are unioned in.
    4. Windows are merged into a sorted, non-overlapping list.

An empty result means the staff member does not work that date.
"""

import logging
from typing import Iterable, Optional

from salonbook.schemas.directory_schema import StaffMember
from salonbook.schemas.schedule_schema import (
    BusinessHoursDay,
    OverrideType,
    ResolvedDay,
    ScheduleOverride,
    StaffOvertime,
    TimeWindow,
)
from salonbook.utils import canonical_date, dates_between, time_to_minutes, weekday_name

logger = logging.getLogger(__name__)


def resolve_schedule(
    date: str,
    staff: StaffMember,
    override: Optional[ScheduleOverride],
    overtime_entries: Iterable[StaffOvertime],
    business_hours: Optional[dict[str, BusinessHoursDay]] = None,
) -> ResolvedDay:
    """Resolve the effective schedule of one staff member for one date."""
    day = weekday_name(date)
    available = False
    start: Optional[str] = None
    end: Optional[str] = None
    override_type: Optional[OverrideType] = None
    is_time_off = False

    if override is not None:
        override_type = override.type
        if override.type == OverrideType.CUSTOM_HOURS:
            available = True
            start, end = override.start_time, override.end_time
        else:
            is_time_off = override.type == OverrideType.TIME_OFF
    elif staff.default_schedule is not None:
        entry = staff.default_schedule.get(day)
        if entry is not None and entry.available:
            available = True
            start, end = entry.start, entry.end
    elif business_hours:
        hours = business_hours.get(day)
        if hours is not None and not hours.closed:
            available = True
            start, end = hours.open, hours.close

    # A zero-length base window is the same as not working.
    if available and time_to_minutes(start) >= time_to_minutes(end):
        available, start, end = False, None, None

    overtime = [
        TimeWindow(start=time_to_minutes(o.start_time), end=time_to_minutes(o.end_time))
        for o in overtime_entries
    ]

    return ResolvedDay(
        date=date,
        available=available,
        effective_start=start,
        effective_end=end,
        overtime_windows=overtime,
        override_type=override_type,
        is_time_off=is_time_off,
    )


def merge_windows(windows: Iterable[TimeWindow]) -> list[TimeWindow]:
    """Sort and merge overlapping or touching windows."""
    merged: list[TimeWindow] = []
    for window in sorted(windows, key=lambda w: (w.start, w.end)):
        if merged and window.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = TimeWindow(start=last.start, end=max(last.end, window.end))
        else:
            merged.append(window)
    return merged


def working_windows(resolved: ResolvedDay) -> list[TimeWindow]:
    """Flatten a ResolvedDay into merged [start, end) minute windows."""
    windows = list(resolved.overtime_windows)
    if resolved.available and resolved.effective_start and resolved.effective_end:
        windows.append(TimeWindow(
            start=time_to_minutes(resolved.effective_start),
            end=time_to_minutes(resolved.effective_end),
        ))
    return merge_windows(windows)


def fits_working_windows(start: int, end: int, windows: Iterable[TimeWindow]) -> bool:
    """True when [start, end) sits entirely inside one window."""
    return any(w.contains(start, end) for w in windows)


def resolve_schedule_range(
    start_date: str,
    end_date: str,
    staff: StaffMember,
    overrides: Iterable[ScheduleOverride],
    overtime_entries: Iterable[StaffOvertime],
    business_hours: Optional[dict[str, BusinessHoursDay]] = None,
) -> list[ResolvedDay]:
    """Resolve every date in an inclusive range."""
    by_date = {o.date: o for o in overrides}
    overtime = list(overtime_entries)
    return [
        resolve_schedule(
            day,
            staff,
            by_date.get(day),
            [o for o in overtime if o.date == day],
            business_hours,
        )
        for day in dates_between(start_date, end_date)
    ]


class CalendarResolver:
    """Reads schedule data from storage and resolves working windows."""

    def __init__(self, store, organizations, staff_directory) -> None:
        self._store = store
        self._organizations = organizations
        self._staff = staff_directory

    def resolve_day(self, organization_id: str, staff_id: str, date: str) -> Optional[ResolvedDay]:
        date = canonical_date(date)
        staff = self._staff.get_staff(organization_id, staff_id)
        if staff is None:
            return None
        return resolve_schedule(
            date,
            staff,
            self._store.get_override(organization_id, staff_id, date),
            self._store.list_overtime(organization_id, staff_id, date),
            self._organizations.get_business_hours(organization_id),
        )

    def resolve_working_windows(
        self, organization_id: str, staff_id: str, date: str
    ) -> list[TimeWindow]:
        """Working windows for a staff member on a date; empty when off or unknown."""
        resolved = self.resolve_day(organization_id, staff_id, date)
        if resolved is None:
            return []
        windows = working_windows(resolved)
        logger.debug(
            "Resolved %d window(s) for staff %s on %s (override=%s)",
            len(windows), staff_id, date,
            resolved.override_type.value if resolved.override_type else None,
        )
        return windows
