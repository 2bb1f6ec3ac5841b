"""
Staff directory with service eligibility.

In production, this would query the staff profiles owned by the salon's
member management. The scheduler only needs active staff, their weekly
schedules and which services they perform.
"""

import logging
from typing import Iterable, Optional

from salonbook.schemas.directory_schema import StaffMember

logger = logging.getLogger(__name__)


class StaffDirectory:
    """In-memory staff records keyed by id."""

    def __init__(self) -> None:
        self._staff: dict[str, StaffMember] = {}

    def add(self, staff: StaffMember) -> StaffMember:
        self._staff[staff.id] = staff
        logger.debug("Staff added: %s (%s)", staff.name, staff.id)
        return staff

    def get_staff(self, organization_id: str, staff_id: str) -> Optional[StaffMember]:
        """Return the staff member only if they belong to the organization."""
        staff = self._staff.get(staff_id)
        if staff is None or staff.organization_id != organization_id:
            return None
        return staff

    def list_active_staff(self, organization_id: str) -> list[StaffMember]:
        return sorted(
            (s for s in self._staff.values() if s.organization_id == organization_id and s.is_active),
            key=lambda s: s.id,
        )

    @staticmethod
    def can_perform(staff: StaffMember, service_ids: Iterable[str]) -> bool:
        offered = set(staff.service_ids)
        return all(sid in offered for sid in service_ids)

    def eligible_staff(
        self, organization_id: str, service_ids: list[str], staff_id: Optional[str] = None
    ) -> list[StaffMember]:
        """Active staff able to perform every requested service, ordered by id."""
        if staff_id is not None:
            staff = self.get_staff(organization_id, staff_id)
            candidates = [staff] if staff is not None and staff.is_active else []
        else:
            candidates = self.list_active_staff(organization_id)
        eligible = [s for s in candidates if self.can_perform(s, service_ids)]
        if not eligible:
            logger.warning(
                "No eligible staff for services %s in org %s",
                ", ".join(service_ids), organization_id,
            )
        return eligible
