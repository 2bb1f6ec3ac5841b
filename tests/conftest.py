"""Shared test fixtures and helpers."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from salonbook.config import RateLimitConfig, settings
from salonbook.schemas.appointment_schema import CustomerInfo
from salonbook.schemas.directory_schema import OrganizationSettings, Service, StaffMember
from salonbook.schemas.schedule_schema import BusinessHoursDay, DaySchedule
from salonbook.service import SchedulingService
from salonbook.utils import local_datetime

ORG = "org_test"
OTHER_ORG = "org_other"

# Monday. The clock starts on the Sunday before at 08:00 UTC.
DAY = "2026-03-02"
NEXT_DAY = "2026-03-03"
START = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock the tests can move by hand."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def set_local(self, day: str, minutes: int, utc_offset_minutes: int = 0) -> None:
        self.now = local_datetime(day, minutes, utc_offset_minutes)


def weekday_schedule(start: str = "09:00", end: str = "18:00") -> dict[str, DaySchedule]:
    """Monday to Friday at the given hours, weekends off."""
    days = {d: DaySchedule(start=start, end=end) for d in
            ("monday", "tuesday", "wednesday", "thursday", "friday")}
    days["saturday"] = DaySchedule(available=False)
    days["sunday"] = DaySchedule(available=False)
    return days


def make_customer(name: str = "Ayla Demir", phone: str = "+90 532 111 22 33") -> CustomerInfo:
    return CustomerInfo(name=name, phone=phone, email="ayla@example.com")


def make_service(
    clock: Optional[FakeClock] = None,
    auto_confirm: bool = False,
    rate_limits: RateLimitConfig = settings.rate_limits,
) -> SchedulingService:
    """A salon with two stylists, a barber and four services."""
    service = SchedulingService(clock=clock or FakeClock(), rate_limits=rate_limits)
    service.organizations.register(OrganizationSettings(
        organization_id=ORG,
        name="Test Salon",
        business_hours={
            "monday": BusinessHoursDay(open="10:00", close="17:00"),
            "sunday": BusinessHoursDay(closed=True),
        },
        utc_offset_minutes=0,
        slot_step_minutes=15,
        lock_ttl_seconds=120,
        modification_cutoff_minutes=120,
        auto_confirm=auto_confirm,
        min_advance_minutes=0,
        max_advance_days=30,
    ))
    for svc in (
        Service(id="svc_cut", organization_id=ORG, name="Haircut", duration=30, price=300),
        Service(id="svc_color", organization_id=ORG, name="Coloring", duration=90, price=900),
        Service(id="svc_beard", organization_id=ORG, name="Beard trim", duration=20, price=150),
        Service(id="svc_old", organization_id=ORG, name="Perm", duration=60, price=500,
                status="inactive"),
    ):
        service.catalog.add(svc)

    service.staff.add(StaffMember(
        id="stf_a", organization_id=ORG, name="Selin",
        service_ids=["svc_cut", "svc_color"], default_schedule=weekday_schedule(),
    ))
    service.staff.add(StaffMember(
        id="stf_b", organization_id=ORG, name="Mert",
        service_ids=["svc_cut", "svc_beard"], default_schedule=weekday_schedule("12:00", "16:00"),
    ))
    # No weekly schedule: falls back to business hours.
    service.staff.add(StaffMember(
        id="stf_c", organization_id=ORG, name="Deniz", service_ids=["svc_beard"],
    ))
    service.staff.add(StaffMember(
        id="stf_gone", organization_id=ORG, name="Former", status="inactive",
        service_ids=["svc_cut"], default_schedule=weekday_schedule(),
    ))
    service.staff.add(StaffMember(
        id="stf_other", organization_id=OTHER_ORG, name="Elsewhere",
        service_ids=["svc_cut"], default_schedule=weekday_schedule(),
    ))
    return service


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return make_service(clock)


@pytest.fixture
def booked(service):
    """A 10:00-10:30 haircut with stf_a on DAY."""
    return service.bookings.book(
        ORG, "stf_a", DAY, 600, 630, ["svc_cut"], make_customer()
    )
