"""Tests for booking, reschedule, cancellation and status changes."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from salonbook.config import RateLimitConfig
from salonbook.directory.notifications import NotificationType
from salonbook.schemas.appointment_schema import Actor, AppointmentStatus
from salonbook.schemas.result_schema import ErrorCode
from salonbook.scheduling.errors import (
    AppointmentNotFound,
    AvailabilityConflict,
    InvalidConfirmationOrPhone,
    InvalidRequest,
    InvalidStaffForServices,
    InvalidStatusTransition,
    OutsideModificationWindow,
    OutsideWorkingHours,
    RateLimited,
)
from tests.conftest import (
    DAY,
    NEXT_DAY,
    ORG,
    OTHER_ORG,
    FakeClock,
    make_customer,
    make_service,
)

PHONE = "+90 532 111 22 33"


def assert_no_double_booking(service, staff_id, date):
    live = [a for a in service.store.list_appointments(ORG, staff_id, date) if not a.is_terminal]
    for i, a in enumerate(live):
        for b in live[i + 1:]:
            assert not (a.start_time < b.end_time and b.start_time < a.end_time), (a.id, b.id)


class TestBook:
    def test_creates_pending_appointment(self, service, booked, clock):
        assert booked.id.startswith("apt_")
        assert booked.status == AppointmentStatus.PENDING
        assert booked.confirmed_at is None
        assert booked.created_at == clock.now
        assert len(booked.confirmation_code) == 6
        assert (booked.start_time, booked.end_time) == (600, 630)

    def test_snapshots_services_and_totals(self, service):
        appt = service.bookings.book(
            ORG, "stf_a", DAY, 600, 720, ["svc_cut", "svc_color"], make_customer()
        )
        assert [s.service_id for s in appt.services] == ["svc_cut", "svc_color"]
        assert appt.subtotal == 1200
        assert appt.total == 1200

    def test_auto_confirm(self):
        service = make_service(auto_confirm=True)
        appt = service.bookings.book(ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer())
        assert appt.status == AppointmentStatus.CONFIRMED
        assert appt.confirmed_at is not None

    def test_emits_new_booking_event(self, service, booked):
        events = service.notifier.events_of(NotificationType.NEW_BOOKING)
        assert [e.appointment_id for e in events] == [booked.id]
        assert events[0].payload["start_time"] == "10:00"

    def test_failing_sink_does_not_fail_booking(self, service):
        def broken(event):
            raise RuntimeError("smtp down")

        service.notifier.subscribe(broken)
        appt = service.bookings.book(ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer())
        assert service.store.get_appointment(appt.id) is not None

    def test_overlapping_booking_rejected(self, service, booked):
        with pytest.raises(AvailabilityConflict):
            service.bookings.book(ORG, "stf_a", DAY, 585, 615, ["svc_cut"], make_customer("Other"))

    def test_touching_booking_allowed(self, service, booked):
        appt = service.bookings.book(ORG, "stf_a", DAY, 630, 660, ["svc_cut"], make_customer())
        assert appt.start_time == 630

    def test_outside_working_hours(self, service):
        with pytest.raises(OutsideWorkingHours):
            service.bookings.book(ORG, "stf_b", DAY, 600, 630, ["svc_cut"], make_customer())

    def test_staff_cannot_perform_service(self, service):
        with pytest.raises(InvalidStaffForServices):
            service.bookings.book(ORG, "stf_b", DAY, 720, 810, ["svc_color"], make_customer())

    def test_slot_shorter_than_services(self, service):
        with pytest.raises(InvalidRequest):
            service.bookings.book(ORG, "stf_a", DAY, 600, 615, ["svc_cut"], make_customer())

    def test_inactive_service(self, service):
        with pytest.raises(InvalidRequest):
            service.bookings.book(ORG, "stf_a", DAY, 600, 660, ["svc_old"], make_customer())

    def test_invalid_phone(self, service):
        with pytest.raises(InvalidRequest):
            service.bookings.book(
                ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer(phone="12-34")
            )

    def test_same_phone_reuses_customer(self, service, booked):
        again = service.bookings.book(
            ORG, "stf_a", NEXT_DAY, 600, 630, ["svc_cut"],
            make_customer(name="Ayla D.", phone="+905321112233"),
        )
        assert again.customer_id == booked.customer_id
        assert service.customers.get(booked.customer_id).name == "Ayla D."


class TestBookWithLock:
    def test_other_session_lock_blocks_booking(self, service):
        service.locks.acquire_lock(ORG, "stf_a", DAY, 600, 630, "sess-1")
        with pytest.raises(AvailabilityConflict):
            service.bookings.book(
                ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer(), session_id="sess-2"
            )

    def test_own_lock_is_consumed(self, service):
        lock = service.locks.acquire_lock(ORG, "stf_a", DAY, 600, 630, "sess-1")
        service.bookings.book(
            ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer(), lock_id=lock.id
        )
        assert service.store.get_lock(lock.id) is None

    def test_expired_lock_still_books_free_slot(self, service, clock):
        lock = service.locks.acquire_lock(ORG, "stf_a", DAY, 600, 630, "sess-1")
        clock.advance(minutes=10)
        appt = service.bookings.book(
            ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer(), lock_id=lock.id
        )
        assert appt.status == AppointmentStatus.PENDING

    def test_expired_lock_loses_to_new_holder(self, service, clock):
        lock = service.locks.acquire_lock(ORG, "stf_a", DAY, 600, 630, "sess-1")
        clock.advance(minutes=3)
        service.locks.acquire_lock(ORG, "stf_a", DAY, 600, 630, "sess-2")
        with pytest.raises(AvailabilityConflict):
            service.bookings.book(
                ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer(), lock_id=lock.id
            )

    def test_lock_for_different_slot_rejected(self, service):
        lock = service.locks.acquire_lock(ORG, "stf_a", DAY, 660, 690, "sess-1")
        with pytest.raises(InvalidRequest):
            service.bookings.book(
                ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer(), lock_id=lock.id
            )


class TestConcurrentBooking:
    def test_exactly_one_booking_wins(self, service):
        barrier = threading.Barrier(6)

        def attempt(i):
            barrier.wait()
            try:
                service.bookings.book(
                    ORG, "stf_a", DAY, 600, 630, ["svc_cut"],
                    make_customer(name=f"Customer {i}", phone=f"+90532000000{i}"),
                )
                return True
            except AvailabilityConflict:
                return False

        with ThreadPoolExecutor(max_workers=6) as pool:
            outcomes = list(pool.map(attempt, range(6)))
        assert outcomes.count(True) == 1
        assert_no_double_booking(service, "stf_a", DAY)

    def test_mixed_intervals_never_overlap(self, service):
        starts = [540, 555, 570, 585, 600, 615, 630, 645] * 2

        def attempt(i):
            try:
                service.bookings.book(
                    ORG, "stf_a", DAY, starts[i], starts[i] + 30, ["svc_cut"],
                    make_customer(phone=f"+9053200000{i:02d}"),
                )
            except AvailabilityConflict:
                pass

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(attempt, range(len(starts))))
        assert_no_double_booking(service, "stf_a", DAY)


class TestConfirmationCodes:
    def test_codes_unique_and_unambiguous(self, service):
        codes = set()
        for i in range(18):
            appt = service.bookings.book(
                ORG, "stf_a", DAY, 540 + i * 30, 570 + i * 30, ["svc_cut"], make_customer()
            )
            codes.add(appt.confirmation_code)
        assert len(codes) == 18
        assert not any(ch in code for code in codes for ch in "01IO")

    def test_lookup_is_case_insensitive(self, service, booked):
        found = service.get_by_confirmation_code(ORG, f" {booked.confirmation_code.lower()} ")
        assert found.id == booked.id

    def test_lookup_scoped_to_organization(self, service, booked):
        assert service.get_by_confirmation_code(OTHER_ORG, booked.confirmation_code) is None


class TestReschedule:
    def test_moves_in_place(self, service, booked):
        moved = service.bookings.reschedule(ORG, booked.id, DAY, 720, 750, new_staff_id="stf_b")
        assert moved.id == booked.id
        assert moved.confirmation_code == booked.confirmation_code
        assert (moved.staff_id, moved.start_time) == ("stf_b", 720)
        assert moved.reschedule_count == 1
        entry = moved.reschedule_history[0]
        assert (entry.from_staff_id, entry.from_start_time) == ("stf_a", 600)
        assert entry.rescheduled_by == Actor.STAFF

    def test_old_slot_is_freed(self, service, booked):
        service.bookings.reschedule(ORG, booked.id, NEXT_DAY, 600, 630)
        assert service.bookings.list_for_day(ORG, DAY) == []
        assert [a.id for a in service.bookings.list_for_day(ORG, NEXT_DAY)] == [booked.id]

    def test_conflict_leaves_original_unchanged(self, service, booked):
        service.bookings.book(
            ORG, "stf_b", DAY, 840, 870, ["svc_cut"], make_customer("Other", "+905320000000")
        )
        with pytest.raises(AvailabilityConflict):
            service.bookings.reschedule(ORG, booked.id, DAY, 840, 870, new_staff_id="stf_b")
        stored = service.bookings.get_appointment(ORG, booked.id)
        assert (stored.staff_id, stored.start_time) == ("stf_a", 600)
        assert stored.reschedule_count == 0

    def test_may_overlap_its_own_old_interval(self, service, booked):
        moved = service.bookings.reschedule(ORG, booked.id, DAY, 615, 645)
        assert moved.start_time == 615

    def test_new_staff_must_perform_services(self, service, booked):
        with pytest.raises(InvalidStaffForServices):
            service.bookings.reschedule(ORG, booked.id, DAY, 720, 750, new_staff_id="stf_c")

    def test_terminal_appointment_cannot_move(self, service, booked):
        service.bookings.cancel(ORG, booked.id)
        with pytest.raises(InvalidStatusTransition):
            service.bookings.reschedule(ORG, booked.id, DAY, 720, 750)

    def test_emits_reschedule_event(self, service, booked):
        service.bookings.reschedule(ORG, booked.id, DAY, 720, 750)
        assert service.notifier.events_of(NotificationType.RESCHEDULE)

    def test_facade_conflict_result(self, service, booked):
        service.locks.acquire_lock(ORG, "stf_a", DAY, 720, 750, "sess-1")
        result = service.reschedule(ORG, booked.id, DAY, 720, 750)
        assert not result.success
        assert result.error_code == ErrorCode.AVAILABILITY_CONFLICT


class TestCustomerSelfService:
    def test_cancel_refused_inside_cutoff(self, service, booked, clock):
        clock.set_local(DAY, 600 - 119)
        with pytest.raises(OutsideModificationWindow):
            service.bookings.cancel_by_customer(ORG, booked.confirmation_code, PHONE)

    def test_cancel_allowed_before_cutoff(self, service, booked, clock):
        clock.set_local(DAY, 600 - 121)
        appt = service.bookings.cancel_by_customer(ORG, booked.confirmation_code, PHONE, "sick")
        assert appt.status == AppointmentStatus.CANCELLED
        assert appt.cancelled_by == Actor.CUSTOMER
        assert appt.cancellation_reason == "sick"

    def test_cutoff_respects_utc_offset(self, service, booked, clock):
        settings = service.organizations.get_settings(ORG)
        service.organizations.register(settings.model_copy(update={"utc_offset_minutes": 180}))
        # 07:00 UTC on DAY is the 10:00 local start.
        clock.set_local(DAY, 600 - 180 - 121)
        assert service.bookings.cancel_by_customer(ORG, booked.confirmation_code, PHONE)

    def test_wrong_phone_and_unknown_code_look_the_same(self, service, booked):
        with pytest.raises(InvalidConfirmationOrPhone) as wrong_phone:
            service.bookings.cancel_by_customer(ORG, booked.confirmation_code, "+905329999999")
        with pytest.raises(InvalidConfirmationOrPhone) as unknown_code:
            service.bookings.cancel_by_customer(ORG, "ZZZZZZ", PHONE)
        assert str(wrong_phone.value) == str(unknown_code.value)

    def test_reschedule_by_customer(self, service, booked):
        moved = service.bookings.reschedule_by_customer(
            ORG, booked.confirmation_code, "+90 (532) 111-22-33", DAY, 660, 690,
        )
        assert moved.reschedule_history[-1].rescheduled_by == Actor.CUSTOMER

    def test_reschedule_by_customer_inside_cutoff(self, service, booked, clock):
        clock.set_local(DAY, 540)
        result = service.reschedule_by_customer(
            ORG, booked.confirmation_code, PHONE, NEXT_DAY, 600, 630
        )
        assert result.error_code == ErrorCode.OUTSIDE_MODIFICATION_WINDOW

    def test_facade_cancel_by_customer(self, service, booked):
        result = service.cancel_by_customer(ORG, booked.confirmation_code, "+900000000")
        assert not result.success
        assert result.error_code == ErrorCode.INVALID_CONFIRMATION_OR_PHONE


class TestCancel:
    def test_staff_cancel_keeps_record(self, service, booked, clock):
        appt = service.bookings.cancel(ORG, booked.id, reason="stylist ill")
        assert appt.cancelled_by == Actor.STAFF
        assert appt.cancelled_at == clock.now
        assert service.bookings.get_appointment(ORG, booked.id).status == AppointmentStatus.CANCELLED
        assert service.notifier.events_of(NotificationType.CANCELLATION)

    def test_cancel_twice_rejected(self, service, booked):
        service.bookings.cancel(ORG, booked.id)
        with pytest.raises(InvalidStatusTransition):
            service.bookings.cancel(ORG, booked.id)

    def test_unknown_appointment(self, service):
        with pytest.raises(AppointmentNotFound):
            service.bookings.cancel(ORG, "apt_missing")

    def test_other_organization_cannot_see_appointment(self, service, booked):
        result = service.cancel(OTHER_ORG, booked.id)
        assert result.error_code == ErrorCode.APPOINTMENT_NOT_FOUND


class TestUpdateStatus:
    def test_forward_path_stamps_times(self, service, booked, clock):
        service.bookings.update_status(ORG, booked.id, AppointmentStatus.CONFIRMED)
        clock.set_local(DAY, 595)
        service.bookings.update_status(ORG, booked.id, AppointmentStatus.CHECKED_IN)
        service.bookings.update_status(ORG, booked.id, AppointmentStatus.IN_PROGRESS)
        done = service.bookings.update_status(ORG, booked.id, AppointmentStatus.COMPLETED)
        assert done.confirmed_at is not None
        assert done.checked_in_at == clock.now
        assert done.started_at == clock.now
        assert done.completed_at == clock.now
        assert service.customers.get(done.customer_id).total_visits == 1

    def test_skipping_states_rejected(self, service, booked):
        with pytest.raises(InvalidStatusTransition):
            service.bookings.update_status(ORG, booked.id, AppointmentStatus.COMPLETED)

    def test_no_show_before_start_rejected(self, service, booked, clock):
        clock.set_local(DAY, 599)
        with pytest.raises(InvalidStatusTransition):
            service.bookings.update_status(ORG, booked.id, AppointmentStatus.NO_SHOW)

    def test_no_show_after_start(self, service, booked, clock):
        clock.set_local(DAY, 600)
        appt = service.bookings.update_status(ORG, booked.id, "no_show")
        assert appt.status == AppointmentStatus.NO_SHOW
        assert appt.no_show_at == clock.now
        assert service.customers.get(appt.customer_id).no_show_count == 1
        assert service.notifier.events_of(NotificationType.NO_SHOW)

    def test_no_show_frees_slot(self, service, booked, clock):
        clock.set_local(DAY, 600)
        service.bookings.update_status(ORG, booked.id, AppointmentStatus.NO_SHOW)
        walk_in = service.bookings.book(
            ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer("Walk In", "+905320000001")
        )
        assert walk_in.start_time == 600

    def test_terminal_is_absorbing(self, service, booked):
        service.bookings.cancel(ORG, booked.id)
        with pytest.raises(InvalidStatusTransition):
            service.bookings.update_status(ORG, booked.id, AppointmentStatus.CONFIRMED)

    def test_cancel_via_status(self, service, booked):
        result = service.update_status(ORG, booked.id, AppointmentStatus.CANCELLED)
        assert result.success
        assert result.appointment.cancelled_by == Actor.STAFF


class TestFacadeBook:
    def test_success_payload(self, service):
        result = service.book(ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer())
        assert result.success
        assert result.status == AppointmentStatus.PENDING
        assert result.confirmation_code in result.message

    def test_invalid_staff_payload(self, service):
        result = service.book(ORG, "stf_b", DAY, 720, 810, ["svc_color"], make_customer())
        assert not result.success
        assert result.error_code == ErrorCode.INVALID_STAFF_FOR_SERVICES
        assert result.appointment_id is None


class TestFacadeLookups:
    def test_get_appointment(self, service, booked):
        result = service.get_appointment(ORG, booked.id)
        assert result.success
        assert result.appointment.confirmation_code == booked.confirmation_code

    def test_get_missing_appointment(self, service):
        result = service.get_appointment(ORG, "apt_missing")
        assert result.error_code == ErrorCode.APPOINTMENT_NOT_FOUND

    def test_list_for_day_keeps_cancelled(self, service, booked):
        service.cancel(ORG, booked.id)
        day = service.list_for_day(ORG, DAY, staff_id="stf_a")
        assert [a.status for a in day] == [AppointmentStatus.CANCELLED]


class TestDateNormalization:
    def test_unpadded_date_hits_existing_booking(self, service, booked):
        with pytest.raises(AvailabilityConflict):
            service.bookings.book(
                ORG, "stf_a", "2026-3-2", 600, 630, ["svc_cut"],
                make_customer(phone="+90 532 999 88 77"),
            )
        result = service.book(
            ORG, "stf_a", "2026-03-2", 615, 645, ["svc_cut"],
            make_customer(phone="+90 532 999 88 77"),
        )
        assert result.error_code == ErrorCode.AVAILABILITY_CONFLICT
        assert_no_double_booking(service, "stf_a", DAY)

    def test_booking_stored_under_padded_date(self, service):
        appt = service.bookings.book(
            ORG, "stf_a", "2026-3-3", 600, 630, ["svc_cut"], make_customer()
        )
        assert appt.date == NEXT_DAY
        assert [a.id for a in service.list_for_day(ORG, "2026-3-3")] == [appt.id]

    def test_reschedule_to_unpadded_date(self, service, booked):
        other = service.bookings.book(
            ORG, "stf_a", NEXT_DAY, 600, 630, ["svc_cut"], make_customer(phone="+905329998877")
        )
        with pytest.raises(AvailabilityConflict):
            service.bookings.reschedule(ORG, booked.id, "2026-3-03", 600, 630)
        moved = service.bookings.reschedule(ORG, booked.id, "2026-3-03", 660, 690)
        assert moved.date == NEXT_DAY
        assert {a.id for a in service.list_for_day(ORG, NEXT_DAY)} == {other.id, booked.id}

    def test_unparseable_date_rejected(self, service):
        with pytest.raises(InvalidRequest):
            service.bookings.book(ORG, "stf_a", "2026-02-30", 600, 630, ["svc_cut"], make_customer())


class TestBookingRateLimit:
    LIMITS = RateLimitConfig(
        period_seconds=60, lock_rate=30, lock_capacity=40, booking_rate=1, booking_capacity=2
    )

    def test_same_phone_throttled_then_refilled(self):
        clock = FakeClock()
        service = make_service(clock, rate_limits=self.LIMITS)
        service.bookings.book(ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer())
        service.bookings.book(ORG, "stf_a", DAY, 630, 660, ["svc_cut"], make_customer())
        with pytest.raises(RateLimited) as excinfo:
            service.bookings.book(
                ORG, "stf_a", DAY, 660, 690, ["svc_cut"],
                make_customer(phone="+90 (532) 111-22-33"),
            )
        assert excinfo.value.retry_after == 60

        clock.advance(seconds=60)
        appt = service.bookings.book(ORG, "stf_a", DAY, 660, 690, ["svc_cut"], make_customer())
        assert appt.start_time == 660

    def test_other_customers_unaffected(self):
        service = make_service(FakeClock(), rate_limits=self.LIMITS)
        for start in (600, 630):
            service.bookings.book(ORG, "stf_a", DAY, start, start + 30, ["svc_cut"], make_customer())
        result = service.book(
            ORG, "stf_a", DAY, 660, 690, ["svc_cut"], make_customer(phone="+90 532 999 88 77")
        )
        assert result.success

    def test_facade_reports_rate_limited(self):
        service = make_service(FakeClock(), rate_limits=self.LIMITS)
        for start in (600, 630):
            service.book(ORG, "stf_a", DAY, start, start + 30, ["svc_cut"], make_customer())
        result = service.book(ORG, "stf_a", DAY, 660, 690, ["svc_cut"], make_customer())
        assert not result.success
        assert result.error_code == ErrorCode.RATE_LIMITED
        assert "Try again in" in result.message
        assert service.store.list_appointments(ORG, "stf_a", DAY)[-1].start_time == 630
