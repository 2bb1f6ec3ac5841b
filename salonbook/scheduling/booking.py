"""
Booking, reschedule and cancellation transactions.

Every state-changing operation follows the same optimistic pattern: do
the cheap validation up front, then open a store transaction on the
affected (org, staff, date) keys, re-check conflicts against the
authoritative appointment and lock sets, and commit. A lock held by the
customer is a hint, not a guarantee: it may have expired between
acquisition and submission, so the conflict check is always repeated.

Customer-initiated cancel and reschedule verify the phone number on file
and are refused inside the modification cutoff (two hours by default).
"""

import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

from salonbook.directory.customers import is_valid_phone
from salonbook.directory.notifications import NotificationEvent, NotificationType
from salonbook.logging_context import get_request_logger
from salonbook.schemas.appointment_schema import (
    Actor,
    Appointment,
    AppointmentService,
    AppointmentStatus,
    CustomerInfo,
    RescheduleHistoryEntry,
)
from salonbook.scheduling.business_calendar import fits_working_windows
from salonbook.scheduling.confirmation import ensure_unique_code
from salonbook.scheduling.conflicts import find_conflict
from salonbook.scheduling.errors import (
    AppointmentNotFound,
    AvailabilityConflict,
    InvalidConfirmationOrPhone,
    InvalidRequest,
    InvalidStaffForServices,
    InvalidStatusTransition,
    OutsideModificationWindow,
    OutsideWorkingHours,
)
from salonbook.scheduling.locks import (
    active_appointments,
    active_locks,
    validate_date,
    validate_interval,
)
from salonbook.scheduling.rate_limits import TokenBucketLimiter, booking_limiter
from salonbook.scheduling.status import STATUS_TIMESTAMP_FIELDS, AppointmentStatusMachine
from salonbook.storage import store_key
from salonbook.utils import local_datetime, minutes_to_time, normalize_phone, utc_now

logger = get_request_logger(__name__)

# Same message for unknown code and wrong phone so neither can be probed.
CUSTOMER_LOOKUP_FAILED = "No appointment matches this confirmation code and phone number"


class BookingManager:
    """Coordinates appointment creation, reschedule, cancellation and status changes."""

    def __init__(
        self,
        store,
        organizations,
        staff_directory,
        catalog,
        customers,
        calendar,
        notifier,
        clock: Callable[[], datetime] = utc_now,
        limiter: Optional[TokenBucketLimiter] = None,
    ) -> None:
        self._store = store
        self._organizations = organizations
        self._staff = staff_directory
        self._catalog = catalog
        self._customers = customers
        self._calendar = calendar
        self._notifier = notifier
        self._clock = clock
        self._status_machine = AppointmentStatusMachine()
        self._code_lock = threading.Lock()
        self._limiter = limiter or booking_limiter(clock=clock)

    # --- Lookups ---

    def get_appointment(self, organization_id: str, appointment_id: str) -> Appointment:
        appt = self._store.get_appointment(appointment_id)
        if appt is None or appt.organization_id != organization_id:
            raise AppointmentNotFound("Appointment not found")
        return appt

    def get_by_confirmation_code(self, organization_id: str, code: str) -> Optional[Appointment]:
        return self._store.find_by_confirmation_code(organization_id, code.strip().upper())

    def list_for_day(
        self, organization_id: str, date: str, staff_id: Optional[str] = None
    ) -> list[Appointment]:
        date = validate_date(date)
        if staff_id is not None:
            return self._store.list_appointments(organization_id, staff_id, date)
        return self._store.list_appointments_for_day(organization_id, date)

    # --- Create ---

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
    ) -> Appointment:
        """
        Create an appointment for ``[start_time, end_time)``.

        Raises:
            AvailabilityConflict: The interval is taken by an appointment or
                another session's live lock.
            OutsideWorkingHours: The interval is outside the staff member's hours.
            InvalidStaffForServices: The staff member lacks a requested service.
            RateLimited: Too many bookings from this phone number.
            InvalidRequest: Bad interval, services, phone, staff or lock.
        """
        date = validate_date(date)
        validate_interval(start_time, end_time)
        if not service_ids:
            raise InvalidRequest("At least one service must be selected")

        services = self._catalog.get_services(organization_id, service_ids)
        if services is None:
            raise InvalidRequest("One or more services are unavailable")
        total_duration = sum(s.duration for s in services)
        if end_time - start_time < total_duration:
            raise InvalidRequest(
                f"Slot of {end_time - start_time} minutes is shorter than "
                f"the {total_duration} minutes the services need"
            )

        if not is_valid_phone(customer_info.phone):
            raise InvalidRequest("Invalid phone number")
        self._limiter.limit((organization_id, normalize_phone(customer_info.phone)))

        staff = self._staff.get_staff(organization_id, staff_id)
        if staff is None or not staff.is_active:
            raise InvalidRequest("Staff member not found or inactive")
        if not self._staff.can_perform(staff, service_ids):
            raise InvalidStaffForServices("Staff cannot perform one or more selected services")

        lock = self._store.get_lock(lock_id) if lock_id else None
        if lock is not None:
            if (lock.organization_id, lock.staff_id, lock.date, lock.start_time, lock.end_time) != (
                organization_id, staff_id, date, start_time, end_time
            ):
                raise InvalidRequest("Slot lock does not match the requested slot")
            session_id = lock.session_id

        policy = self._organizations.get_policy(organization_id)

        with self._store.transaction(store_key(organization_id, staff_id, date)):
            now = self._clock()
            self._check_bookable(organization_id, staff_id, date, start_time, end_time,
                                 now, session_id=session_id)

            customer = self._customers.find_or_create(organization_id, customer_info)
            subtotal = sum(s.price for s in services)
            status = AppointmentStatus.CONFIRMED if policy.auto_confirm else AppointmentStatus.PENDING

            with self._code_lock:
                code = ensure_unique_code(
                    lambda c: self._store.confirmation_code_exists(organization_id, c)
                )
                appointment = Appointment(
                    id=f"apt_{uuid.uuid4().hex[:12]}",
                    organization_id=organization_id,
                    staff_id=staff_id,
                    customer_id=customer.id,
                    date=date,
                    start_time=start_time,
                    end_time=end_time,
                    status=status,
                    services=[
                        AppointmentService(service_id=s.id, name=s.name, duration=s.duration, price=s.price)
                        for s in services
                    ],
                    confirmation_code=code,
                    subtotal=subtotal,
                    total=subtotal,
                    customer_notes=customer_info.notes,
                    created_at=now,
                    updated_at=now,
                    confirmed_at=now if policy.auto_confirm else None,
                )
                self._store.save_appointment(appointment)

            if lock is not None:
                self._store.delete_lock(lock.id)

        logger.info(
            "Booking committed: %s (%s) staff %s %s %s-%s status=%s",
            appointment.id, code, staff_id, date,
            minutes_to_time(start_time), minutes_to_time(end_time), status.value,
        )
        self._emit(NotificationType.NEW_BOOKING, appointment)
        return appointment

    # --- Reschedule ---

    def reschedule(
        self,
        organization_id: str,
        appointment_id: str,
        new_date: str,
        new_start_time: int,
        new_end_time: int,
        new_staff_id: Optional[str] = None,
        rescheduled_by: Actor = Actor.STAFF,
        session_id: Optional[str] = None,
    ) -> Appointment:
        """
        Move an appointment in place. Identity and confirmation code are kept.

        On any failure the stored appointment is left unchanged.

        Raises:
            AvailabilityConflict: The new interval overlaps another booking or lock.
            OutsideWorkingHours: The new interval is outside the staff member's hours.
            InvalidStaffForServices: The new staff member lacks a booked service.
            InvalidStatusTransition: The appointment is already terminal.
            AppointmentNotFound: No such appointment in this organization.
        """
        new_date = validate_date(new_date)
        validate_interval(new_start_time, new_end_time)

        current = self.get_appointment(organization_id, appointment_id)
        target_staff_id = new_staff_id or current.staff_id
        staff = self._staff.get_staff(organization_id, target_staff_id)
        if staff is None or not staff.is_active:
            raise InvalidRequest("Staff member not found or inactive")
        if not self._staff.can_perform(staff, [s.service_id for s in current.services]):
            raise InvalidStaffForServices("Staff cannot perform one or more booked services")

        new_key = store_key(organization_id, target_staff_id, new_date)
        with self._locked_appointment(organization_id, appointment_id, new_key) as appt:
            if appt.is_terminal:
                raise InvalidStatusTransition(f"Cannot reschedule a {appt.status.value} appointment")

            now = self._clock()
            self._check_bookable(
                organization_id, target_staff_id, new_date, new_start_time, new_end_time,
                now, session_id=session_id, exclude_appointment_id=appt.id,
            )

            history = RescheduleHistoryEntry(
                from_date=appt.date,
                from_start_time=appt.start_time,
                from_end_time=appt.end_time,
                from_staff_id=appt.staff_id,
                to_date=new_date,
                to_start_time=new_start_time,
                to_end_time=new_end_time,
                to_staff_id=target_staff_id,
                rescheduled_by=rescheduled_by,
                rescheduled_at=now,
            )
            updated = appt.model_copy(update={
                "date": new_date,
                "start_time": new_start_time,
                "end_time": new_end_time,
                "staff_id": target_staff_id,
                "reschedule_count": appt.reschedule_count + 1,
                "reschedule_history": [*appt.reschedule_history, history],
                "updated_at": now,
            })
            self._store.save_appointment(updated)

        logger.info(
            "Appointment %s rescheduled by %s: %s %s staff %s -> %s %s staff %s",
            updated.id, rescheduled_by.value,
            history.from_date, minutes_to_time(history.from_start_time), history.from_staff_id,
            new_date, minutes_to_time(new_start_time), target_staff_id,
        )
        self._emit(NotificationType.RESCHEDULE, updated, rescheduled_by=rescheduled_by.value)
        return updated

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
    ) -> Appointment:
        """Customer-facing reschedule; verifies phone and enforces the cutoff."""
        appt = self._verify_customer(organization_id, confirmation_code, phone)
        self._check_modification_window(appt)
        return self.reschedule(
            organization_id, appt.id, new_date, new_start_time, new_end_time,
            new_staff_id=new_staff_id, rescheduled_by=Actor.CUSTOMER, session_id=session_id,
        )

    # --- Cancel ---

    def cancel(
        self,
        organization_id: str,
        appointment_id: str,
        reason: Optional[str] = None,
        cancelled_by: Actor = Actor.STAFF,
    ) -> Appointment:
        """
        Cancel a non-terminal appointment. The record is kept with status ``cancelled``.

        Raises:
            InvalidStatusTransition: The appointment is already terminal.
            AppointmentNotFound: No such appointment in this organization.
        """
        with self._locked_appointment(organization_id, appointment_id) as appt:
            self._status_machine.validate(appt.status, AppointmentStatus.CANCELLED)
            now = self._clock()
            updated = appt.model_copy(update={
                "status": AppointmentStatus.CANCELLED,
                "cancelled_at": now,
                "cancelled_by": cancelled_by,
                "cancellation_reason": reason,
                "updated_at": now,
            })
            self._store.save_appointment(updated)

        logger.info("Appointment %s cancelled by %s", updated.id, cancelled_by.value)
        self._emit(NotificationType.CANCELLATION, updated, cancelled_by=cancelled_by.value)
        return updated

    def cancel_by_customer(
        self,
        organization_id: str,
        confirmation_code: str,
        phone: str,
        reason: Optional[str] = None,
    ) -> Appointment:
        """
        Customer-facing cancel.

        Raises:
            InvalidConfirmationOrPhone: Code unknown or phone does not match.
            OutsideModificationWindow: Less than the cutoff remains before the start.
        """
        appt = self._verify_customer(organization_id, confirmation_code, phone)
        self._check_modification_window(appt)
        return self.cancel(organization_id, appt.id, reason=reason, cancelled_by=Actor.CUSTOMER)

    # --- Status ---

    def update_status(
        self, organization_id: str, appointment_id: str, new_status: AppointmentStatus
    ) -> Appointment:
        """
        Staff status change along the appointment state machine.

        Raises:
            InvalidStatusTransition: Not allowed from the current status, or a
                no-show before the appointment has started.
        """
        new_status = AppointmentStatus(new_status)
        if new_status == AppointmentStatus.CANCELLED:
            return self.cancel(organization_id, appointment_id, cancelled_by=Actor.STAFF)

        policy = self._organizations.get_policy(organization_id)
        with self._locked_appointment(organization_id, appointment_id) as appt:
            now = self._clock()
            start_at = local_datetime(appt.date, appt.start_time, policy.utc_offset_minutes)
            self._status_machine.validate(appt.status, new_status, start_passed=now >= start_at)
            updated = appt.model_copy(update={
                "status": new_status,
                STATUS_TIMESTAMP_FIELDS[new_status]: now,
                "updated_at": now,
            })
            self._store.save_appointment(updated)

        logger.info(
            "Appointment %s status %s -> %s", updated.id, appt.status.value, new_status.value
        )
        if new_status in (AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW):
            self._customers.record_visit_outcome(
                updated.customer_id, completed=new_status == AppointmentStatus.COMPLETED
            )
        if new_status == AppointmentStatus.NO_SHOW:
            self._emit(NotificationType.NO_SHOW, updated)
        return updated

    # --- Internals ---

    @contextmanager
    def _locked_appointment(
        self, organization_id: str, appointment_id: str, *extra_keys
    ) -> Iterator[Appointment]:
        """Yield a fresh copy of the appointment while its current key is locked."""
        while True:
            appt = self.get_appointment(organization_id, appointment_id)
            key = store_key(appt.organization_id, appt.staff_id, appt.date)
            with self._store.transaction(key, *extra_keys):
                fresh = self.get_appointment(organization_id, appointment_id)
                if store_key(fresh.organization_id, fresh.staff_id, fresh.date) != key:
                    # Moved by a concurrent reschedule; lock the new key instead.
                    continue
                yield fresh
                return

    def _check_bookable(
        self,
        organization_id: str,
        staff_id: str,
        date: str,
        start_time: int,
        end_time: int,
        now: datetime,
        session_id: Optional[str] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> None:
        """Working-hours and conflict re-validation. Call inside a transaction."""
        windows = self._calendar.resolve_working_windows(organization_id, staff_id, date)
        if not fits_working_windows(start_time, end_time, windows):
            raise OutsideWorkingHours("Selected time is outside staff working hours")

        clash = find_conflict(start_time, end_time, active_appointments(
            self._store, organization_id, staff_id, date, exclude_appointment_id
        ))
        if clash is not None:
            logger.info(
                "Conflict with appointment %s: staff %s %s [%d, %d)",
                clash.id, staff_id, date, start_time, end_time,
            )
            raise AvailabilityConflict("This time slot is no longer available")

        held = find_conflict(start_time, end_time, active_locks(
            self._store, organization_id, staff_id, date, now, exclude_session_id=session_id
        ))
        if held is not None:
            logger.info(
                "Conflict with lock %s: staff %s %s [%d, %d)",
                held.id, staff_id, date, start_time, end_time,
            )
            raise AvailabilityConflict(
                "This time slot is currently being booked by another customer"
            )

    def _verify_customer(self, organization_id: str, confirmation_code: str, phone: str) -> Appointment:
        appt = self.get_by_confirmation_code(organization_id, confirmation_code)
        if appt is None:
            raise InvalidConfirmationOrPhone(CUSTOMER_LOOKUP_FAILED)
        customer = self._customers.get(appt.customer_id)
        if customer is None or customer.phone != normalize_phone(phone):
            logger.info("Customer verification failed for code %s", appt.confirmation_code)
            raise InvalidConfirmationOrPhone(CUSTOMER_LOOKUP_FAILED)
        return appt

    def _check_modification_window(self, appt: Appointment) -> None:
        policy = self._organizations.get_policy(appt.organization_id)
        start_at = local_datetime(appt.date, appt.start_time, policy.utc_offset_minutes)
        deadline = start_at - timedelta(minutes=policy.modification_cutoff_minutes)
        if self._clock() >= deadline:
            hours = policy.modification_cutoff_minutes / 60
            raise OutsideModificationWindow(
                f"Appointments can only be changed up to {hours:g} hours before the start time"
            )

    def _emit(self, event_type: NotificationType, appt: Appointment, **payload) -> None:
        self._notifier.emit(NotificationEvent(
            type=event_type,
            organization_id=appt.organization_id,
            appointment_id=appt.id,
            staff_id=appt.staff_id,
            payload={
                "date": appt.date,
                "start_time": minutes_to_time(appt.start_time),
                "confirmation_code": appt.confirmation_code,
                **payload,
            },
        ))
