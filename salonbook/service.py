"""
Public scheduling facade.

Wires the calendar resolver, availability computer, lock manager and
booking manager over one store, and exposes them as operations that
return structured results instead of raising. Only ``SchedulingError``
is converted; anything else is a bug and propagates.

Every operation takes ``organization_id`` explicitly. There is no
ambient "current organization".

Usage:
    service = SchedulingService()
    result = service.list_slots("org_1", "2026-03-02", ["svc_cut"])
    if result.success:
        lock = service.acquire_lock("org_1", "stf_1", "2026-03-02",
                                    result.slots[0].start_time,
                                    result.slots[0].end_time, "sess-1")
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

from salonbook.config import RateLimitConfig, settings
from salonbook.directory import (
    CustomerDirectory,
    NotificationDispatcher,
    OrganizationDirectory,
    ServiceCatalog,
    StaffDirectory,
)
from salonbook.logging_context import get_request_logger, new_request_id
from salonbook.schemas.appointment_schema import Actor, Appointment, AppointmentStatus, CustomerInfo
from salonbook.schemas.result_schema import (
    AppointmentResult,
    BookingResult,
    DatesResult,
    LockResult,
    OperationResult,
    SlotsResult,
)
from salonbook.schemas.schedule_schema import (
    OverrideType,
    ScheduleOverride,
    StaffOvertime,
    TimeWindow,
)
from salonbook.schemas.slot_schema import Slot
from salonbook.scheduling import (
    AvailabilityComputer,
    BookingManager,
    CalendarResolver,
    SchedulingError,
    SlotLockManager,
)
from salonbook.scheduling.locks import validate_date
from salonbook.scheduling.rate_limits import booking_limiter, lock_limiter
from salonbook.storage import SchedulingStore
from salonbook.utils import utc_now

logger = get_request_logger(__name__)


def _failure(result_cls, exc: SchedulingError):
    logger.info("%s: %s", exc.code.value, exc)
    return result_cls(success=False, error_code=exc.code, message=str(exc))


def _appointment_result(appt: Appointment, message: str) -> AppointmentResult:
    return AppointmentResult(success=True, appointment=appt, message=message)


class SchedulingService:
    """Entry point used by the booking UI and staff calendar."""

    def __init__(
        self,
        store: Optional[SchedulingStore] = None,
        organizations: Optional[OrganizationDirectory] = None,
        staff: Optional[StaffDirectory] = None,
        catalog: Optional[ServiceCatalog] = None,
        customers: Optional[CustomerDirectory] = None,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
        rate_limits: RateLimitConfig = settings.rate_limits,
    ) -> None:
        self.store = store or SchedulingStore()
        self.organizations = organizations or OrganizationDirectory()
        self.staff = staff or StaffDirectory()
        self.catalog = catalog or ServiceCatalog()
        self.customers = customers or CustomerDirectory()
        self.notifier = notifier or NotificationDispatcher()

        self.calendar = CalendarResolver(self.store, self.organizations, self.staff)
        self.availability = AvailabilityComputer(
            self.store, self.organizations, self.staff, self.catalog, self.calendar, clock
        )
        self.locks = SlotLockManager(
            self.store, self.organizations, self.staff, self.calendar, clock,
            limiter=lock_limiter(rate_limits, clock),
        )
        self.bookings = BookingManager(
            self.store, self.organizations, self.staff, self.catalog,
            self.customers, self.calendar, self.notifier, clock,
            limiter=booking_limiter(rate_limits, clock),
        )

    # --- Availability ---

    def resolve_working_windows(self, organization_id: str, staff_id: str, date: str) -> list[TimeWindow]:
        return self.calendar.resolve_working_windows(organization_id, staff_id, date)

    def list_slots(
        self,
        organization_id: str,
        date: str,
        service_ids: list[str],
        staff_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> SlotsResult:
        new_request_id()
        try:
            slots = self.availability.list_slots(
                organization_id, date, service_ids, staff_id, session_id
            )
        except SchedulingError as exc:
            return _failure(SlotsResult, exc)
        return SlotsResult(success=True, slots=slots, message=f"{len(slots)} slot(s) available on {date}.")

    def available_dates(
        self,
        organization_id: str,
        start_date: str,
        end_date: str,
        service_ids: list[str],
        staff_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> DatesResult:
        new_request_id()
        try:
            dates = self.availability.available_dates(
                organization_id, start_date, end_date, service_ids, staff_id, session_id
            )
        except SchedulingError as exc:
            return _failure(DatesResult, exc)
        return DatesResult(success=True, dates=dates)

    # --- Slot locks ---

    def acquire_lock(
        self,
        organization_id: str,
        staff_id: str,
        date: str,
        start_time: int,
        end_time: int,
        session_id: str,
    ) -> LockResult:
        new_request_id()
        try:
            lock = self.locks.acquire_lock(
                organization_id, staff_id, date, start_time, end_time, session_id
            )
        except SchedulingError as exc:
            return _failure(LockResult, exc)
        return LockResult(success=True, lock=lock, message="Slot reserved.")

    def acquire_slot(
        self, organization_id: str, date: str, slot: Slot, session_id: str
    ) -> LockResult:
        """Lock a listed slot, picking a concrete staff member for "any staff" slots."""
        new_request_id()
        try:
            lock = self.locks.acquire_for_slot(organization_id, date, slot, session_id)
        except SchedulingError as exc:
            return _failure(LockResult, exc)
        return LockResult(success=True, lock=lock, message="Slot reserved.")

    def release_lock(self, lock_id: str, session_id: Optional[str] = None) -> OperationResult:
        new_request_id()
        released = self.locks.release_lock(lock_id, session_id)
        return OperationResult(
            success=True, message="Lock released." if released else "No lock to release."
        )

    def cleanup_expired_locks(self) -> int:
        return self.locks.cleanup_expired()

    # --- Bookings ---

    def book(
        self,
        organization_id: str,
        staff_id: str,
        date: str,
        start_time: int,
        end_time: int,
        service_ids: list[str],
        customer_info: CustomerInfo,
        lock_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> BookingResult:
        new_request_id()
        try:
            appt = self.bookings.book(
                organization_id, staff_id, date, start_time, end_time,
                service_ids, customer_info, lock_id=lock_id, session_id=session_id,
            )
        except SchedulingError as exc:
            return _failure(BookingResult, exc)
        return BookingResult(
            success=True,
            appointment_id=appt.id,
            confirmation_code=appt.confirmation_code,
            customer_id=appt.customer_id,
            status=appt.status,
            message=f"Booking received. Confirmation code: {appt.confirmation_code}.",
        )

    def reschedule(
        self,
        organization_id: str,
        appointment_id: str,
        new_date: str,
        new_start_time: int,
        new_end_time: int,
        new_staff_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> AppointmentResult:
        new_request_id()
        try:
            appt = self.bookings.reschedule(
                organization_id, appointment_id, new_date, new_start_time, new_end_time,
                new_staff_id=new_staff_id, session_id=session_id,
            )
        except SchedulingError as exc:
            return _failure(AppointmentResult, exc)
        return _appointment_result(appt, "Appointment rescheduled.")

    def reschedule_by_customer(
        self,
        organization_id: str,
        confirmation_code: str,
        phone: str,
        new_date: str,
        new_start_time: int,
        new_end_time: int,
        new_staff_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> AppointmentResult:
        new_request_id()
        try:
            appt = self.bookings.reschedule_by_customer(
                organization_id, confirmation_code, phone, new_date,
                new_start_time, new_end_time, new_staff_id, session_id,
            )
        except SchedulingError as exc:
            return _failure(AppointmentResult, exc)
        return _appointment_result(appt, "Appointment rescheduled.")

    def cancel(
        self,
        organization_id: str,
        appointment_id: str,
        reason: Optional[str] = None,
        cancelled_by: Actor = Actor.STAFF,
    ) -> AppointmentResult:
        new_request_id()
        try:
            appt = self.bookings.cancel(organization_id, appointment_id, reason, cancelled_by)
        except SchedulingError as exc:
            return _failure(AppointmentResult, exc)
        return _appointment_result(appt, "Appointment cancelled.")

    def cancel_by_customer(
        self,
        organization_id: str,
        confirmation_code: str,
        phone: str,
        reason: Optional[str] = None,
    ) -> AppointmentResult:
        new_request_id()
        try:
            appt = self.bookings.cancel_by_customer(organization_id, confirmation_code, phone, reason)
        except SchedulingError as exc:
            return _failure(AppointmentResult, exc)
        return _appointment_result(appt, "Appointment cancelled.")

    def update_status(
        self, organization_id: str, appointment_id: str, new_status: AppointmentStatus
    ) -> AppointmentResult:
        new_request_id()
        try:
            appt = self.bookings.update_status(organization_id, appointment_id, new_status)
        except SchedulingError as exc:
            return _failure(AppointmentResult, exc)
        return _appointment_result(appt, f"Status changed to {appt.status.value}.")

    def get_appointment(self, organization_id: str, appointment_id: str) -> AppointmentResult:
        try:
            appt = self.bookings.get_appointment(organization_id, appointment_id)
        except SchedulingError as exc:
            return _failure(AppointmentResult, exc)
        return _appointment_result(appt, "")

    def get_by_confirmation_code(self, organization_id: str, code: str) -> Optional[Appointment]:
        return self.bookings.get_by_confirmation_code(organization_id, code)

    def list_for_day(
        self, organization_id: str, date: str, staff_id: Optional[str] = None
    ) -> list[Appointment]:
        """Staff calendar view: every appointment on a date, terminal ones included."""
        return self.bookings.list_for_day(organization_id, date, staff_id)

    # --- Schedule data ---

    def upsert_override(
        self,
        organization_id: str,
        staff_id: str,
        date: str,
        override_type: OverrideType,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> ScheduleOverride:
        """Set the single override for (staff, date), replacing any earlier one.

        Raises InvalidRequest for a malformed date and pydantic.ValidationError
        for custom hours without a valid range.
        """
        date = validate_date(date)
        existing = self.store.get_override(organization_id, staff_id, date)
        override = ScheduleOverride(
            id=existing.id if existing else f"ovr_{uuid.uuid4().hex[:12]}",
            organization_id=organization_id,
            staff_id=staff_id,
            date=date,
            type=override_type,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
        )
        self.store.save_override(override)
        logger.info("Override %s set for staff %s on %s", override.type.value, staff_id, date)
        return override

    def remove_override(self, organization_id: str, staff_id: str, date: str) -> bool:
        date = validate_date(date)
        return self.store.delete_override(organization_id, staff_id, date)

    def add_overtime(
        self, organization_id: str, staff_id: str, date: str, start_time: str, end_time: str
    ) -> StaffOvertime:
        date = validate_date(date)
        entry = StaffOvertime(
            id=f"ot_{uuid.uuid4().hex[:12]}",
            organization_id=organization_id,
            staff_id=staff_id,
            date=date,
            start_time=start_time,
            end_time=end_time,
        )
        self.store.save_overtime(entry)
        logger.info("Overtime %s-%s added for staff %s on %s", start_time, end_time, staff_id, date)
        return entry

    def remove_overtime(self, overtime_id: str) -> bool:
        return self.store.delete_overtime(overtime_id)
