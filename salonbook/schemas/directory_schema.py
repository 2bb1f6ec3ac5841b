"""Organization, staff and service catalog records."""

from typing import Optional

from pydantic import BaseModel, Field

from salonbook.schemas.schedule_schema import BusinessHoursDay, DaySchedule


class OrganizationSettings(BaseModel):
    """Salon-level booking policy. Unset fields fall back to app config."""
    organization_id: str
    name: str = ""
    business_hours: dict[str, BusinessHoursDay] = Field(default_factory=dict)
    utc_offset_minutes: Optional[int] = None
    slot_step_minutes: Optional[int] = None
    lock_ttl_seconds: Optional[int] = None
    modification_cutoff_minutes: Optional[int] = None
    auto_confirm: Optional[bool] = None
    min_advance_minutes: Optional[int] = None
    max_advance_days: Optional[int] = None


class StaffMember(BaseModel):
    """Staff profile as seen by the scheduler."""
    id: str
    organization_id: str
    name: str
    status: str = "active"
    service_ids: list[str] = Field(default_factory=list)
    # None means "no schedule configured": business hours are used instead.
    default_schedule: Optional[dict[str, DaySchedule]] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class Service(BaseModel):
    id: str
    organization_id: str
    name: str
    duration: int = Field(gt=0)
    price: int = Field(ge=0)
    status: str = "active"
