"""Slot, slot lock and calendar availability models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SlotLock(BaseModel):
    """Short-lived reservation of an interval during the booking flow."""
    id: str
    organization_id: str
    staff_id: str
    date: str
    start_time: int
    end_time: int
    session_id: str
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


class Slot(BaseModel):
    """
    A bookable interval.

    Either ``staff_id`` is set (listing was for one staff member) or the
    slot is unresolved and ``candidate_staff_ids`` lists everyone who can
    take it. Resolution to one staff member happens when the lock is taken.
    """
    start_time: int
    end_time: int
    staff_id: Optional[str] = None
    candidate_staff_ids: list[str] = Field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.staff_id is not None


class DateAvailability(BaseModel):
    """Summary of availability for a single date."""
    date: str
    day_name: str
    has_availability: bool
    slot_count: int
