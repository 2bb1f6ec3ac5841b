"""
Scheduling engine demo entry point.

Seeds an in-memory demo salon and runs availability queries or a full
lock -> book -> reschedule -> cancel walkthrough against it. No database,
no network calls.

Usage:
    Slots for a day:   python main.py slots --date 2026-03-02 --service svc_cut
    One stylist only:  python main.py slots --date 2026-03-02 --service svc_cut --staff stf_selin
    Dates overview:    python main.py dates --start 2026-03-02 --days 7 --service svc_color
    Walkthrough:       python main.py walkthrough --date 2026-03-02
"""

import argparse
from datetime import timedelta
from typing import Optional

from salonbook.config import settings
from salonbook.schemas.appointment_schema import CustomerInfo
from salonbook.schemas.directory_schema import OrganizationSettings, Service, StaffMember
from salonbook.schemas.schedule_schema import BusinessHoursDay, DaySchedule, WEEKDAYS
from salonbook.service import SchedulingService
from salonbook.utils import format_date, local_now_parts, minutes_to_time, parse_date, utc_now

DEMO_ORG = "org_demo"

GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


def build_demo_service() -> SchedulingService:
    """A two-chair salon open Monday to Saturday."""
    service = SchedulingService()
    service.organizations.register(OrganizationSettings(
        organization_id=DEMO_ORG,
        name="Demo Salon",
        business_hours={
            day: BusinessHoursDay(open="09:00", close="19:00", closed=day == "sunday")
            for day in WEEKDAYS
        },
    ))
    for svc in (
        Service(id="svc_cut", organization_id=DEMO_ORG, name="Haircut", duration=45, price=400),
        Service(id="svc_color", organization_id=DEMO_ORG, name="Coloring", duration=120, price=1200),
        Service(id="svc_blowdry", organization_id=DEMO_ORG, name="Blow-dry", duration=30, price=250),
    ):
        service.catalog.add(svc)

    service.staff.add(StaffMember(
        id="stf_selin", organization_id=DEMO_ORG, name="Selin",
        service_ids=["svc_cut", "svc_color", "svc_blowdry"],
        default_schedule={
            day: DaySchedule(available=day not in ("sunday", "monday"), start="10:00", end="19:00")
            for day in WEEKDAYS
        },
    ))
    # No weekly schedule: works the salon's business hours.
    service.staff.add(StaffMember(
        id="stf_mert", organization_id=DEMO_ORG, name="Mert",
        service_ids=["svc_cut", "svc_blowdry"],
    ))
    return service


def _default_date(service: SchedulingService) -> str:
    policy = service.organizations.get_policy(DEMO_ORG)
    today, _ = local_now_parts(utc_now(), policy.utc_offset_minutes)
    return format_date(parse_date(today) + timedelta(days=1))


def show_slots(service: SchedulingService, date: str, service_ids: list[str], staff_id: Optional[str]) -> None:
    result = service.list_slots(DEMO_ORG, date, service_ids, staff_id=staff_id)
    if not result.success:
        print(f"{RED}{result.error_code.value}: {result.message}{RESET}")
        return
    print(f"{BOLD}{date}{RESET} {DIM}({', '.join(service_ids)}){RESET}")
    if not result.slots:
        print(f"  {YELLOW}No availability.{RESET}")
    for slot in result.slots:
        who = slot.staff_id or ", ".join(slot.candidate_staff_ids)
        print(f"  {GREEN}{minutes_to_time(slot.start_time)}-{minutes_to_time(slot.end_time)}{RESET}  {DIM}{who}{RESET}")


def show_dates(service: SchedulingService, start: str, days: int, service_ids: list[str], staff_id: Optional[str]) -> None:
    end = format_date(parse_date(start) + timedelta(days=days - 1))
    result = service.available_dates(DEMO_ORG, start, end, service_ids, staff_id=staff_id)
    if not result.success:
        print(f"{RED}{result.error_code.value}: {result.message}{RESET}")
        return
    for entry in result.dates:
        colour = GREEN if entry.has_availability else DIM
        print(f"  {colour}{entry.date} {entry.day_name:<9} {entry.slot_count:>3} slot(s){RESET}")


def walkthrough(service: SchedulingService, date: str) -> None:
    """Two sessions race for one slot; the winner books, reschedules and cancels."""
    first = service.list_slots(DEMO_ORG, date, ["svc_cut"]).slots
    if not first:
        print(f"{YELLOW}No haircut availability on {date}.{RESET}")
        return
    slot = first[0]
    print(f"{BOLD}Slot offered:{RESET} {minutes_to_time(slot.start_time)} ({', '.join(slot.candidate_staff_ids)})")

    held = service.acquire_slot(DEMO_ORG, date, slot, "session-ayla")
    if not held.success:
        print(f"{RED}{held.error_code.value}: {held.message}{RESET}")
        return
    print(f"  session-ayla lock: {held.message} -> {held.lock.staff_id}")
    rival = service.acquire_lock(
        DEMO_ORG, held.lock.staff_id, date, slot.start_time, slot.end_time, "session-deniz"
    )
    print(f"  session-deniz lock: {RED}{rival.error_code.value}{RESET} {DIM}{rival.message}{RESET}")

    booking = service.book(
        DEMO_ORG, held.lock.staff_id, date, slot.start_time, slot.end_time, ["svc_cut"],
        CustomerInfo(name="Ayla Demir", phone="+90 532 111 22 33"),
        lock_id=held.lock.id,
    )
    print(f"  {GREEN}{booking.message}{RESET}")

    later = [s for s in service.list_slots(DEMO_ORG, date, ["svc_cut"], staff_id=held.lock.staff_id).slots
             if s.start_time >= slot.end_time + 60]
    if later:
        moved = service.reschedule_by_customer(
            DEMO_ORG, booking.confirmation_code, "+90 (532) 111-22-33",
            date, later[0].start_time, later[0].end_time,
        )
        if moved.success:
            print(f"  Reschedule: {moved.message} {DIM}{minutes_to_time(later[0].start_time)}{RESET}")
        else:
            print(f"  Reschedule: {RED}{moved.error_code.value}{RESET}")

    cancelled = service.cancel_by_customer(DEMO_ORG, booking.confirmation_code, "+90 532 000 00 00")
    print(f"  Cancel with wrong phone: {RED}{cancelled.error_code.value}{RESET}")
    cancelled = service.cancel_by_customer(DEMO_ORG, booking.confirmation_code, "+90 532 111 22 33")
    print(f"  Cancel: {cancelled.message if cancelled.success else cancelled.error_code.value}")

    for event in service.notifier.outbox:
        print(f"  {DIM}event {event.type.value} {event.payload}{RESET}")


def main() -> None:
    parser = argparse.ArgumentParser(description=f"{settings.service_name} scheduling demo")
    sub = parser.add_subparsers(dest="command", required=True)

    slots = sub.add_parser("slots", help="List bookable slots for one date")
    slots.add_argument("--date", default=None, help="YYYY-MM-DD, defaults to tomorrow")
    slots.add_argument("--service", action="append", dest="services", help="Service id, repeatable")
    slots.add_argument("--staff", default=None, help="Restrict to one staff id")

    dates = sub.add_parser("dates", help="Per-day availability summary")
    dates.add_argument("--start", default=None, help="YYYY-MM-DD, defaults to tomorrow")
    dates.add_argument("--days", type=int, default=7)
    dates.add_argument("--service", action="append", dest="services", help="Service id, repeatable")
    dates.add_argument("--staff", default=None, help="Restrict to one staff id")

    walk = sub.add_parser("walkthrough", help="Lock, book, reschedule and cancel on the demo salon")
    walk.add_argument("--date", default=None, help="YYYY-MM-DD, defaults to tomorrow")

    args = parser.parse_args()
    service = build_demo_service()

    if args.command == "slots":
        show_slots(service, args.date or _default_date(service), args.services or ["svc_cut"], args.staff)
    elif args.command == "dates":
        show_dates(service, args.start or _default_date(service), args.days,
                   args.services or ["svc_cut"], args.staff)
    else:
        walkthrough(service, args.date or _default_date(service))


if __name__ == "__main__":
    main()
