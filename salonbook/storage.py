"""
In-memory authoritative storage for the scheduling core.

Holds appointments, slot locks, schedule overrides and overtime. Every
record is keyed by ``(organization_id, staff_id, date)``, which is also
the unit of contention: ``transaction()`` serializes check-then-write
operations on the same key while leaving other staff/dates untouched.

Reads hand out deep copies, and writes replace whole records, so a
reader never observes half of another operation's changes.

In production this would be backed by a database with serializable
transactions or row locks on the same key.
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from salonbook.schemas.appointment_schema import Appointment
from salonbook.schemas.schedule_schema import ScheduleOverride, StaffOvertime
from salonbook.schemas.slot_schema import SlotLock

logger = logging.getLogger(__name__)

StoreKey = tuple[str, str, str]


def store_key(organization_id: str, staff_id: str, date: str) -> StoreKey:
    return (organization_id, staff_id, date)


class SchedulingStore:
    """Thread-safe record storage with per-(org, staff, date) transactions."""

    def __init__(self) -> None:
        self._guard = threading.RLock()
        self._key_locks: dict[StoreKey, threading.Lock] = {}
        self._appointments: dict[str, Appointment] = {}
        self._appointments_by_key: dict[StoreKey, set[str]] = defaultdict(set)
        self._locks: dict[str, SlotLock] = {}
        self._overrides: dict[StoreKey, ScheduleOverride] = {}
        self._overtime: dict[str, StaffOvertime] = {}

    # --- Transactions ---

    def _key_lock(self, key: StoreKey) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    @contextmanager
    def transaction(self, *keys: StoreKey) -> Iterator[None]:
        """Hold the mutex of every given key for the duration of the block.

        Keys are acquired in sorted order so two operations touching the
        same pair of keys cannot deadlock.
        """
        ordered = sorted(set(keys))
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._key_lock(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    # --- Appointments ---

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        with self._guard:
            appt = self._appointments.get(appointment_id)
            return appt.model_copy(deep=True) if appt else None

    def save_appointment(self, appointment: Appointment) -> None:
        """Insert or replace an appointment, re-indexing if it moved."""
        new_key = store_key(appointment.organization_id, appointment.staff_id, appointment.date)
        with self._guard:
            old = self._appointments.get(appointment.id)
            if old is not None:
                old_key = store_key(old.organization_id, old.staff_id, old.date)
                if old_key != new_key:
                    self._appointments_by_key[old_key].discard(appointment.id)
            self._appointments[appointment.id] = appointment.model_copy(deep=True)
            self._appointments_by_key[new_key].add(appointment.id)

    def list_appointments(
        self, organization_id: str, staff_id: str, date: str
    ) -> list[Appointment]:
        key = store_key(organization_id, staff_id, date)
        with self._guard:
            return sorted(
                (self._appointments[i].model_copy(deep=True) for i in self._appointments_by_key.get(key, ())),
                key=lambda a: (a.start_time, a.id),
            )

    def list_appointments_for_day(self, organization_id: str, date: str) -> list[Appointment]:
        with self._guard:
            return sorted(
                (
                    a.model_copy(deep=True)
                    for a in self._appointments.values()
                    if a.organization_id == organization_id and a.date == date
                ),
                key=lambda a: (a.start_time, a.staff_id, a.id),
            )

    def find_by_confirmation_code(
        self, organization_id: str, code: str
    ) -> Optional[Appointment]:
        with self._guard:
            for appt in self._appointments.values():
                if appt.organization_id == organization_id and appt.confirmation_code == code:
                    return appt.model_copy(deep=True)
        return None

    def confirmation_code_exists(self, organization_id: str, code: str) -> bool:
        return self.find_by_confirmation_code(organization_id, code) is not None

    # --- Slot locks ---

    def get_lock(self, lock_id: str) -> Optional[SlotLock]:
        with self._guard:
            lock = self._locks.get(lock_id)
            return lock.model_copy() if lock else None

    def insert_lock(self, lock: SlotLock) -> None:
        with self._guard:
            self._locks[lock.id] = lock.model_copy()

    def delete_lock(self, lock_id: str) -> bool:
        with self._guard:
            return self._locks.pop(lock_id, None) is not None

    def list_locks(self, organization_id: str, staff_id: str, date: str) -> list[SlotLock]:
        with self._guard:
            return [
                lock.model_copy()
                for lock in self._locks.values()
                if (lock.organization_id, lock.staff_id, lock.date)
                == (organization_id, staff_id, date)
            ]

    def list_locks_for_session(self, session_id: str) -> list[SlotLock]:
        with self._guard:
            return [lock.model_copy() for lock in self._locks.values() if lock.session_id == session_id]

    def delete_expired_locks(self, now: datetime) -> int:
        with self._guard:
            expired = [lock_id for lock_id, lock in self._locks.items() if not lock.is_active(now)]
            for lock_id in expired:
                del self._locks[lock_id]
            return len(expired)

    # --- Schedule overrides and overtime ---

    def get_override(
        self, organization_id: str, staff_id: str, date: str
    ) -> Optional[ScheduleOverride]:
        with self._guard:
            override = self._overrides.get(store_key(organization_id, staff_id, date))
            return override.model_copy() if override else None

    def save_override(self, override: ScheduleOverride) -> None:
        key = store_key(override.organization_id, override.staff_id, override.date)
        with self._guard:
            self._overrides[key] = override.model_copy()

    def delete_override(self, organization_id: str, staff_id: str, date: str) -> bool:
        with self._guard:
            return self._overrides.pop(store_key(organization_id, staff_id, date), None) is not None

    def list_overrides(self, organization_id: str, staff_id: str) -> list[ScheduleOverride]:
        with self._guard:
            return sorted(
                (
                    o.model_copy()
                    for (org, staff, _), o in self._overrides.items()
                    if org == organization_id and staff == staff_id
                ),
                key=lambda o: o.date,
            )

    def save_overtime(self, entry: StaffOvertime) -> None:
        with self._guard:
            self._overtime[entry.id] = entry.model_copy()

    def delete_overtime(self, overtime_id: str) -> bool:
        with self._guard:
            return self._overtime.pop(overtime_id, None) is not None

    def list_overtime(self, organization_id: str, staff_id: str, date: str) -> list[StaffOvertime]:
        with self._guard:
            return sorted(
                (
                    o.model_copy()
                    for o in self._overtime.values()
                    if (o.organization_id, o.staff_id, o.date) == (organization_id, staff_id, date)
                ),
                key=lambda o: (o.start_time, o.id),
            )
