from salonbook.scheduling.availability import AvailabilityComputer
from salonbook.scheduling.booking import BookingManager
from salonbook.scheduling.business_calendar import CalendarResolver
from salonbook.scheduling.conflicts import overlaps
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
    SchedulingError,
)
from salonbook.scheduling.locks import SlotLockManager
from salonbook.scheduling.status import AppointmentStatusMachine

__all__ = [
    "AppointmentNotFound",
    "AppointmentStatusMachine",
    "AvailabilityComputer",
    "AvailabilityConflict",
    "BookingManager",
    "CalendarResolver",
    "InvalidConfirmationOrPhone",
    "InvalidRequest",
    "InvalidStaffForServices",
    "InvalidStatusTransition",
    "OutsideModificationWindow",
    "OutsideWorkingHours",
    "RateLimited",
    "SchedulingError",
    "SlotLockManager",
    "overlaps",
]
