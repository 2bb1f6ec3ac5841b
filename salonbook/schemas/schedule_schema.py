"""Working-hours data models: weekly schedules, overrides, overtime, windows."""

from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field, model_validator

from salonbook.utils import MINUTES_PER_DAY, time_to_minutes

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def _check_hhmm(value: str) -> str:
    time_to_minutes(value)
    return value


TimeOfDay = Annotated[str, AfterValidator(_check_hhmm)]


class DaySchedule(BaseModel):
    """One weekday entry of a staff member's default schedule."""
    available: bool = True
    start: TimeOfDay = "09:00"
    end: TimeOfDay = "18:00"


class BusinessHoursDay(BaseModel):
    """Organization opening hours for one weekday."""
    open: TimeOfDay = "09:00"
    close: TimeOfDay = "18:00"
    closed: bool = False


class OverrideType(str, Enum):
    CUSTOM_HOURS = "custom_hours"
    DAY_OFF = "day_off"
    TIME_OFF = "time_off"


class ScheduleOverride(BaseModel):
    """Date-specific replacement of a staff member's hours."""
    id: str
    organization_id: str
    staff_id: str
    date: str
    type: OverrideType
    start_time: Optional[TimeOfDay] = None
    end_time: Optional[TimeOfDay] = None
    reason: Optional[str] = None

    @model_validator(mode="after")
    def check_custom_hours(self) -> "ScheduleOverride":
        if self.type == OverrideType.CUSTOM_HOURS:
            if not self.start_time or not self.end_time:
                raise ValueError("custom_hours overrides require start_time and end_time")
            if time_to_minutes(self.start_time) >= time_to_minutes(self.end_time):
                raise ValueError("override start_time must be before end_time")
        return self


class StaffOvertime(BaseModel):
    """Extra working window added on top of the resolved hours for a date."""
    id: str
    organization_id: str
    staff_id: str
    date: str
    start_time: TimeOfDay
    end_time: TimeOfDay

    @model_validator(mode="after")
    def check_order(self) -> "StaffOvertime":
        if time_to_minutes(self.start_time) >= time_to_minutes(self.end_time):
            raise ValueError("overtime start_time must be before end_time")
        return self


class TimeWindow(BaseModel):
    """Half-open [start, end) interval in minutes from midnight."""
    start: int = Field(ge=0, le=MINUTES_PER_DAY)
    end: int = Field(ge=0, le=MINUTES_PER_DAY)

    @model_validator(mode="after")
    def check_order(self) -> "TimeWindow":
        if self.start >= self.end:
            raise ValueError(f"window start {self.start} must be before end {self.end}")
        return self

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end


class ResolvedDay(BaseModel):
    """Effective schedule for one staff member on one date."""
    date: str
    available: bool
    effective_start: Optional[str] = None
    effective_end: Optional[str] = None
    overtime_windows: list[TimeWindow] = Field(default_factory=list)
    override_type: Optional[OverrideType] = None
    is_time_off: bool = False
