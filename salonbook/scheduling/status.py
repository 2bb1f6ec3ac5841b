"""
Appointment status state machine.

    pending -> confirmed -> checked_in -> in_progress -> completed

``cancelled`` and ``no_show`` are reachable from every non-terminal state.
``completed``, ``cancelled`` and ``no_show`` are absorbing. A ``no_show``
transition additionally requires the appointment start to have passed;
the caller supplies that fact since this module has no clock.

Usage:
    machine = AppointmentStatusMachine()
    machine.validate(AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)
"""

import logging
from dataclasses import dataclass

from salonbook.schemas.appointment_schema import AppointmentStatus, TERMINAL_STATUSES
from salonbook.scheduling.errors import InvalidStatusTransition

logger = logging.getLogger(__name__)

S = AppointmentStatus


@dataclass(frozen=True)
class StatusTransition:
    """A single valid status change."""
    from_status: AppointmentStatus
    to_status: AppointmentStatus
    requires_start_passed: bool = False


# Timestamp field stamped when an appointment enters each status.
STATUS_TIMESTAMP_FIELDS: dict[AppointmentStatus, str] = {
    S.CONFIRMED: "confirmed_at",
    S.CHECKED_IN: "checked_in_at",
    S.IN_PROGRESS: "started_at",
    S.COMPLETED: "completed_at",
    S.NO_SHOW: "no_show_at",
    S.CANCELLED: "cancelled_at",
}

_ACTIVE = (S.PENDING, S.CONFIRMED, S.CHECKED_IN, S.IN_PROGRESS)


class AppointmentStatusMachine:
    """Validates appointment status changes against an explicit transition table."""

    TRANSITIONS: list[StatusTransition] = [
        # --- Forward path ---
        StatusTransition(S.PENDING, S.CONFIRMED),
        StatusTransition(S.CONFIRMED, S.CHECKED_IN),
        StatusTransition(S.CHECKED_IN, S.IN_PROGRESS),
        StatusTransition(S.IN_PROGRESS, S.COMPLETED),

        # --- Exits from any active state ---
        *(StatusTransition(status, S.CANCELLED) for status in _ACTIVE),
        *(StatusTransition(status, S.NO_SHOW, requires_start_passed=True) for status in _ACTIVE),
    ]

    def find(
        self, current: AppointmentStatus, target: AppointmentStatus
    ) -> StatusTransition:
        """
        Look up the transition from ``current`` to ``target``.

        Raises:
            InvalidStatusTransition: If no such transition exists.
        """
        if current in TERMINAL_STATUSES:
            raise InvalidStatusTransition(
                f"Cannot change status of a {current.value} appointment"
            )
        for t in self.TRANSITIONS:
            if t.from_status == current and t.to_status == target:
                return t
        valid = [s.value for s in self.allowed_targets(current)]
        raise InvalidStatusTransition(
            f"Cannot transition from '{current.value}' to '{target.value}'. "
            f"Valid targets: {valid}"
        )

    def validate(
        self,
        current: AppointmentStatus,
        target: AppointmentStatus,
        start_passed: bool = False,
    ) -> StatusTransition:
        transition = self.find(current, target)
        if transition.requires_start_passed and not start_passed:
            raise InvalidStatusTransition(
                f"Cannot mark {target.value} before the appointment start time"
            )
        logger.debug("Status transition allowed: %s -> %s", current.value, target.value)
        return transition

    def allowed_targets(self, current: AppointmentStatus) -> list[AppointmentStatus]:
        return [t.to_status for t in self.TRANSITIONS if t.from_status == current]

    @staticmethod
    def is_terminal(status: AppointmentStatus) -> bool:
        return status in TERMINAL_STATUSES
