"""
Typed failures raised by the scheduling core.

Each error carries an ``ErrorCode`` so the public facade can turn it into
a structured result the UI can render specific guidance for. None of
these are retried by the core.
"""

from salonbook.schemas.result_schema import ErrorCode


class SchedulingError(Exception):
    """Base class for all expected scheduling failures."""

    code: ErrorCode = ErrorCode.INVALID_REQUEST


class AvailabilityConflict(SchedulingError):
    """The requested interval is no longer free. Re-query availability."""

    code = ErrorCode.AVAILABILITY_CONFLICT


class OutsideModificationWindow(SchedulingError):
    """Customer change attempted inside the cancellation cutoff."""

    code = ErrorCode.OUTSIDE_MODIFICATION_WINDOW


class InvalidStaffForServices(SchedulingError):
    code = ErrorCode.INVALID_STAFF_FOR_SERVICES


class AppointmentNotFound(SchedulingError):
    code = ErrorCode.APPOINTMENT_NOT_FOUND


class InvalidConfirmationOrPhone(SchedulingError):
    """Customer lookup failed. Never says which of code or phone was wrong."""

    code = ErrorCode.INVALID_CONFIRMATION_OR_PHONE


class InvalidStatusTransition(SchedulingError):
    code = ErrorCode.INVALID_STATUS_TRANSITION


class OutsideWorkingHours(SchedulingError):
    code = ErrorCode.OUTSIDE_WORKING_HOURS


class InvalidRequest(SchedulingError):
    """Malformed input: bad time range, unknown staff or service, bad phone."""

    code = ErrorCode.INVALID_REQUEST


class RateLimited(SchedulingError):
    """Too many attempts from one session or customer. ``retry_after`` is in seconds."""

    code = ErrorCode.RATE_LIMITED

    def __init__(self, message: str, retry_after: int = 0) -> None:
        super().__init__(message)
        self.retry_after = retry_after
