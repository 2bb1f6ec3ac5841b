"""Structured results returned by the public scheduling facade."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from salonbook.schemas.appointment_schema import Appointment, AppointmentStatus
from salonbook.schemas.slot_schema import DateAvailability, Slot, SlotLock


class ErrorCode(str, Enum):
    AVAILABILITY_CONFLICT = "availability_conflict"
    OUTSIDE_MODIFICATION_WINDOW = "outside_modification_window"
    INVALID_STAFF_FOR_SERVICES = "invalid_staff_for_services"
    APPOINTMENT_NOT_FOUND = "appointment_not_found"
    INVALID_CONFIRMATION_OR_PHONE = "invalid_confirmation_or_phone"
    INVALID_STATUS_TRANSITION = "invalid_status_transition"
    OUTSIDE_WORKING_HOURS = "outside_working_hours"
    INVALID_REQUEST = "invalid_request"
    RATE_LIMITED = "rate_limited"


class OperationResult(BaseModel):
    """Base result: success flag plus a typed error on failure."""
    success: bool
    error_code: Optional[ErrorCode] = None
    message: str = ""


class SlotsResult(OperationResult):
    slots: list[Slot] = Field(default_factory=list)


class DatesResult(OperationResult):
    dates: list[DateAvailability] = Field(default_factory=list)


class LockResult(OperationResult):
    lock: Optional[SlotLock] = None


class BookingResult(OperationResult):
    appointment_id: Optional[str] = None
    confirmation_code: Optional[str] = None
    customer_id: Optional[str] = None
    status: Optional[AppointmentStatus] = None


class AppointmentResult(OperationResult):
    appointment: Optional[Appointment] = None
