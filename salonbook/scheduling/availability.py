"""
Availability computation.

For a date and a set of services, produce every bookable start time:

    1. Total duration = sum of service durations, rounded up to the step.
    2. Eligible staff = active staff who perform every requested service
       (or just the requested staff member).
    3. For each staff member, walk the resolved working windows on the
       step grid and keep candidates that fit inside a window and do not
       overlap a non-terminal appointment or another session's live lock.
    4. Without a staff filter, identical intervals are merged and tagged
       with every staff member who can take them.

The result depends only on stored state and the clock, so running it
twice with no intervening writes yields the same list.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from salonbook.logging_context import get_request_logger
from salonbook.schemas.slot_schema import DateAvailability, Slot
from salonbook.scheduling.conflicts import has_conflict
from salonbook.scheduling.locks import active_appointments, active_locks, validate_date
from salonbook.utils import (
    MINUTES_PER_DAY,
    dates_between,
    format_date,
    local_now_parts,
    parse_date,
    round_up_to_step,
    utc_now,
)

logger = get_request_logger(__name__)


def candidate_starts(window_start: int, window_end: int, duration: int, step: int) -> list[int]:
    """Grid-aligned starts such that start + duration <= window_end."""
    first = round_up_to_step(window_start, step)
    return list(range(first, window_end - duration + 1, step))


class AvailabilityComputer:
    """Read-only slot and date availability queries."""

    def __init__(
        self,
        store,
        organizations,
        staff_directory,
        catalog,
        calendar,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._organizations = organizations
        self._staff = staff_directory
        self._catalog = catalog
        self._calendar = calendar
        self._clock = clock

    def slot_duration(self, organization_id: str, service_ids: list[str]) -> Optional[int]:
        """Rounded booking length for the services, or None if any is invalid."""
        if not service_ids:
            return None
        total = self._catalog.get_service_durations(organization_id, service_ids)
        if total is None:
            return None
        step = self._organizations.get_policy(organization_id).slot_step_minutes
        return round_up_to_step(total, step)

    def _earliest_start(self, organization_id: str, date: str, now: datetime) -> Optional[int]:
        """First bookable minute on ``date``, or None if the date is not bookable at all."""
        policy = self._organizations.get_policy(organization_id)
        today, _ = local_now_parts(now, policy.utc_offset_minutes)
        earliest_date, earliest_minute = local_now_parts(
            now + timedelta(minutes=policy.min_advance_minutes), policy.utc_offset_minutes
        )
        target = parse_date(date)
        if target < parse_date(earliest_date):
            return None
        if (target - parse_date(today)).days > policy.max_advance_days:
            return None
        if target == parse_date(earliest_date):
            # A slot starting in the current minute is already gone.
            return earliest_minute + 1
        return 0

    def list_slots(
        self,
        organization_id: str,
        date: str,
        service_ids: list[str],
        staff_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> list[Slot]:
        """
        Bookable intervals on ``date`` in ascending start order.

        Returns an empty list (never an error) for past dates, days off,
        unknown services or when no staff member can perform every service.
        """
        date = validate_date(date)
        duration = self.slot_duration(organization_id, service_ids)
        if duration is None:
            return []

        now = self._clock()
        earliest = self._earliest_start(organization_id, date, now)
        if earliest is None:
            return []

        step = self._organizations.get_policy(organization_id).slot_step_minutes
        staff_members = self._staff.eligible_staff(organization_id, service_ids, staff_id)

        by_interval: dict[tuple[int, int], list[str]] = {}
        for staff in staff_members:
            for start in self._free_starts(
                organization_id, staff.id, date, duration, step, now, earliest, session_id
            ):
                by_interval.setdefault((start, start + duration), []).append(staff.id)

        slots = []
        for (start, end), staff_ids in sorted(by_interval.items()):
            if staff_id is not None:
                slots.append(Slot(start_time=start, end_time=end, staff_id=staff_id,
                                  candidate_staff_ids=[staff_id]))
            else:
                slots.append(Slot(start_time=start, end_time=end,
                                  candidate_staff_ids=sorted(staff_ids)))

        logger.debug(
            "list_slots org=%s date=%s services=%s staff=%s -> %d slot(s)",
            organization_id, date, ",".join(service_ids), staff_id, len(slots),
        )
        return slots

    def _free_starts(
        self,
        organization_id: str,
        staff_id: str,
        date: str,
        duration: int,
        step: int,
        now: datetime,
        earliest: int,
        session_id: Optional[str],
    ) -> list[int]:
        windows = self._calendar.resolve_working_windows(organization_id, staff_id, date)
        if not windows:
            return []

        blocked = [
            *active_appointments(self._store, organization_id, staff_id, date),
            *active_locks(self._store, organization_id, staff_id, date, now,
                          exclude_session_id=session_id),
        ]

        starts = []
        for window in windows:
            for start in candidate_starts(window.start, window.end, duration, step):
                if start < earliest or start + duration > MINUTES_PER_DAY:
                    continue
                if not has_conflict(start, start + duration, blocked):
                    starts.append(start)
        return starts

    def available_dates(
        self,
        organization_id: str,
        start_date: str,
        end_date: str,
        service_ids: list[str],
        staff_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> list[DateAvailability]:
        """Per-date availability summary for an inclusive calendar range."""
        start_date = validate_date(start_date)
        end_date = validate_date(end_date)
        results = []
        for day in dates_between(start_date, end_date):
            slots = self.list_slots(organization_id, day, service_ids, staff_id, session_id)
            results.append(DateAvailability(
                date=day,
                day_name=parse_date(day).strftime("%A"),
                has_availability=bool(slots),
                slot_count=len(slots),
            ))
        return results

    def next_available_date(
        self,
        organization_id: str,
        service_ids: list[str],
        staff_id: Optional[str] = None,
        days: int = 14,
    ) -> Optional[str]:
        """First date from today (organization local) with at least one slot."""
        policy = self._organizations.get_policy(organization_id)
        today, _ = local_now_parts(self._clock(), policy.utc_offset_minutes)
        last = format_date(parse_date(today) + timedelta(days=days - 1))
        for entry in self.available_dates(organization_id, today, last, service_ids, staff_id):
            if entry.has_availability:
                return entry.date
        return None
