"""
Slot lock manager.

A slot lock is a short-lived claim on ``[start, end)`` for one staff
member and date, held by a browsing session while the customer fills in
the booking form. Acquisition re-validates the interval against current
appointments and other sessions' unexpired locks under the store's
per-(org, staff, date) transaction, so two overlapping acquisitions can
never both succeed.

Expired locks are ignored by every read path. ``cleanup_expired`` only
reclaims storage.
"""

import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from salonbook.logging_context import get_request_logger
from salonbook.schemas.appointment_schema import Appointment
from salonbook.schemas.slot_schema import Slot, SlotLock
from salonbook.scheduling.business_calendar import fits_working_windows
from salonbook.scheduling.conflicts import find_conflict
from salonbook.scheduling.errors import (
    AvailabilityConflict,
    InvalidRequest,
    OutsideWorkingHours,
    SchedulingError,
)
from salonbook.scheduling.rate_limits import TokenBucketLimiter, lock_limiter
from salonbook.storage import store_key
from salonbook.utils import MINUTES_PER_DAY, canonical_date, utc_now

logger = get_request_logger(__name__)

# Striped so the per-session mutexes stay bounded however many sessions come and go.
SESSION_LOCK_STRIPES = 64


def validate_interval(start_time: int, end_time: int) -> None:
    """Reject intervals outside the day or with start >= end."""
    if start_time < 0 or end_time > MINUTES_PER_DAY:
        raise InvalidRequest("Time values must be within the day (0-1440 minutes)")
    if end_time <= start_time:
        raise InvalidRequest("End time must be after start time")


def validate_date(date: str) -> str:
    """Return the zero-padded "YYYY-MM-DD" form used for every key and record."""
    try:
        return canonical_date(date)
    except ValueError:
        raise InvalidRequest(f"Invalid date {date!r}, expected YYYY-MM-DD") from None


def active_appointments(
    store, organization_id: str, staff_id: str, date: str,
    exclude_appointment_id: Optional[str] = None,
) -> list[Appointment]:
    """Non-terminal appointments that occupy time for this staff/date."""
    return [
        a for a in store.list_appointments(organization_id, staff_id, date)
        if not a.is_terminal and a.id != exclude_appointment_id
    ]


def active_locks(
    store, organization_id: str, staff_id: str, date: str, now: datetime,
    exclude_session_id: Optional[str] = None,
) -> list[SlotLock]:
    """Unexpired locks held by sessions other than ``exclude_session_id``."""
    return [
        lock for lock in store.list_locks(organization_id, staff_id, date)
        if lock.is_active(now) and lock.session_id != exclude_session_id
    ]


class SlotLockManager:
    """Acquires, releases and expires slot locks."""

    def __init__(
        self,
        store,
        organizations,
        staff_directory,
        calendar,
        clock: Callable[[], datetime] = utc_now,
        limiter: Optional[TokenBucketLimiter] = None,
    ) -> None:
        self._store = store
        self._organizations = organizations
        self._staff = staff_directory
        self._calendar = calendar
        self._clock = clock
        self._limiter = limiter or lock_limiter(clock=clock)
        self._session_locks = [threading.Lock() for _ in range(SESSION_LOCK_STRIPES)]

    def _session_lock(self, session_id: str) -> threading.Lock:
        return self._session_locks[hash(session_id) % SESSION_LOCK_STRIPES]

    def acquire_lock(
        self,
        organization_id: str,
        staff_id: str,
        date: str,
        start_time: int,
        end_time: int,
        session_id: str,
    ) -> SlotLock:
        """
        Claim ``[start_time, end_time)`` for ``session_id``.

        The session's previous lock, wherever it was, is replaced on
        success and left untouched on failure.

        Raises:
            AvailabilityConflict: The interval is booked or locked by another session.
            OutsideWorkingHours: The interval is not inside the staff member's hours.
            RateLimited: The session has made too many lock attempts.
            InvalidRequest: Bad interval, date, session or staff member.
        """
        date = validate_date(date)
        validate_interval(start_time, end_time)
        if not session_id:
            raise InvalidRequest("A session id is required to lock a slot")
        self._limiter.limit((organization_id, session_id))
        return self._claim(organization_id, staff_id, date, start_time, end_time, session_id)

    def _claim(
        self,
        organization_id: str,
        staff_id: str,
        date: str,
        start_time: int,
        end_time: int,
        session_id: str,
    ) -> SlotLock:
        staff = self._staff.get_staff(organization_id, staff_id)
        if staff is None or not staff.is_active:
            raise InvalidRequest("Staff does not belong to this organization")

        policy = self._organizations.get_policy(organization_id)

        # Session first, then the slot key: a session's old locks may sit under other keys.
        with self._session_lock(session_id), \
                self._store.transaction(store_key(organization_id, staff_id, date)):
            now = self._clock()
            windows = self._calendar.resolve_working_windows(organization_id, staff_id, date)
            if not fits_working_windows(start_time, end_time, windows):
                raise OutsideWorkingHours("Selected time is outside staff working hours")

            if find_conflict(start_time, end_time, active_appointments(
                self._store, organization_id, staff_id, date
            )):
                logger.info(
                    "Lock rejected, appointment conflict: staff %s %s [%d, %d)",
                    staff_id, date, start_time, end_time,
                )
                raise AvailabilityConflict("This time slot is no longer available")

            if find_conflict(start_time, end_time, active_locks(
                self._store, organization_id, staff_id, date, now, exclude_session_id=session_id
            )):
                logger.info(
                    "Lock rejected, held by another session: staff %s %s [%d, %d)",
                    staff_id, date, start_time, end_time,
                )
                raise AvailabilityConflict(
                    "This time slot is currently being booked by another customer"
                )

            for previous in self._store.list_locks_for_session(session_id):
                self._store.delete_lock(previous.id)

            lock = SlotLock(
                id=f"lock_{uuid.uuid4().hex[:12]}",
                organization_id=organization_id,
                staff_id=staff_id,
                date=date,
                start_time=start_time,
                end_time=end_time,
                session_id=session_id,
                expires_at=now + timedelta(seconds=policy.lock_ttl_seconds),
            )
            self._store.insert_lock(lock)

        logger.info(
            "Lock %s acquired by session %s: staff %s %s [%d, %d)",
            lock.id, session_id, staff_id, date, start_time, end_time,
        )
        return lock

    def acquire_for_slot(
        self, organization_id: str, date: str, slot: Slot, session_id: str
    ) -> SlotLock:
        """
        Lock a listed slot, resolving "any staff" slots to one staff member.

        Candidates are tried in order; the first one that can be locked wins.
        The whole attempt counts once against the session's rate limit.
        """
        candidates = [slot.staff_id] if slot.staff_id else list(slot.candidate_staff_ids)
        if not candidates:
            raise InvalidRequest("Slot has no staff candidates")
        date = validate_date(date)
        validate_interval(slot.start_time, slot.end_time)
        if not session_id:
            raise InvalidRequest("A session id is required to lock a slot")
        self._limiter.limit((organization_id, session_id))

        last_error: Optional[SchedulingError] = None
        for staff_id in candidates:
            try:
                return self._claim(
                    organization_id, staff_id, date, slot.start_time, slot.end_time, session_id
                )
            except (AvailabilityConflict, OutsideWorkingHours) as exc:
                last_error = exc
        raise AvailabilityConflict(
            str(last_error) if last_error else "This time slot is no longer available"
        )

    def release_lock(self, lock_id: str, session_id: Optional[str] = None) -> bool:
        """Delete a lock. With ``session_id`` given, only the owner may release it."""
        lock = self._store.get_lock(lock_id)
        if lock is None:
            return False
        if session_id is not None and lock.session_id != session_id:
            logger.warning("Session %s tried to release lock %s it does not own", session_id, lock_id)
            return False
        released = self._store.delete_lock(lock_id)
        if released:
            logger.info("Lock %s released", lock_id)
        return released

    def get_lock(self, lock_id: str) -> Optional[SlotLock]:
        """Return the lock if it exists and has not expired."""
        lock = self._store.get_lock(lock_id)
        if lock is None or not lock.is_active(self._clock()):
            return None
        return lock

    def active_locks(
        self, organization_id: str, staff_id: str, date: str,
        exclude_session_id: Optional[str] = None,
    ) -> list[SlotLock]:
        return active_locks(
            self._store, organization_id, staff_id, date, self._clock(), exclude_session_id
        )

    def cleanup_expired(self) -> int:
        """Remove expired locks from storage. Housekeeping only."""
        removed = self._store.delete_expired_locks(self._clock())
        if removed:
            logger.info("cleanup_expired: %d expired slot locks removed", removed)
        return removed
