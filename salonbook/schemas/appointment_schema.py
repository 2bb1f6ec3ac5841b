"""Appointment, customer and reschedule history models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})


class Actor(str, Enum):
    """Who initiated a cancellation or reschedule."""
    CUSTOMER = "customer"
    STAFF = "staff"
    SYSTEM = "system"


class CustomerInfo(BaseModel):
    """Contact details submitted with a booking."""
    name: str = Field(min_length=2)
    phone: str
    email: Optional[str] = None
    notes: Optional[str] = None


class Customer(BaseModel):
    id: str
    organization_id: str
    name: str
    phone: str
    email: Optional[str] = None
    total_visits: int = 0
    no_show_count: int = 0


class AppointmentService(BaseModel):
    """Snapshot of a booked service at booking time."""
    service_id: str
    name: str
    duration: int
    price: int


class RescheduleHistoryEntry(BaseModel):
    from_date: str
    from_start_time: int
    from_end_time: int
    from_staff_id: str
    to_date: str
    to_start_time: int
    to_end_time: int
    to_staff_id: str
    rescheduled_by: Actor
    rescheduled_at: datetime


class Appointment(BaseModel):
    id: str
    organization_id: str
    staff_id: str
    customer_id: str
    date: str
    start_time: int
    end_time: int
    status: AppointmentStatus = AppointmentStatus.PENDING
    services: list[AppointmentService] = Field(default_factory=list)
    confirmation_code: str
    subtotal: int = 0
    total: int = 0
    customer_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    confirmed_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[Actor] = None
    cancellation_reason: Optional[str] = None
    reschedule_count: int = 0
    reschedule_history: list[RescheduleHistoryEntry] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
