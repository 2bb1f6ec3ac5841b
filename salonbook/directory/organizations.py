"""
Organization settings and booking policy resolution.

In production, settings come from the salon's settings table. Here they
are held in memory; any field an organization leaves unset falls back to
the application-wide ``settings.scheduling`` defaults.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from salonbook.config import settings
from salonbook.schemas.directory_schema import OrganizationSettings
from salonbook.schemas.schedule_schema import BusinessHoursDay

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingPolicy:
    """Effective per-organization scheduling policy."""

    slot_step_minutes: int
    lock_ttl_seconds: int
    modification_cutoff_minutes: int
    utc_offset_minutes: int
    auto_confirm: bool
    min_advance_minutes: int
    max_advance_days: int


def _pick(value, default):
    return default if value is None else value


class OrganizationDirectory:
    """Organization settings lookup."""

    def __init__(self) -> None:
        self._settings: dict[str, OrganizationSettings] = {}

    def register(self, org_settings: OrganizationSettings) -> OrganizationSettings:
        self._settings[org_settings.organization_id] = org_settings
        logger.debug("Organization registered: %s", org_settings.organization_id)
        return org_settings

    def get_settings(self, organization_id: str) -> Optional[OrganizationSettings]:
        return self._settings.get(organization_id)

    def get_business_hours(self, organization_id: str) -> dict[str, BusinessHoursDay]:
        org = self._settings.get(organization_id)
        return dict(org.business_hours) if org else {}

    def get_policy(self, organization_id: str) -> BookingPolicy:
        """Merge organization overrides onto the application defaults."""
        defaults = settings.scheduling
        org = self._settings.get(organization_id) or OrganizationSettings(
            organization_id=organization_id
        )
        return BookingPolicy(
            slot_step_minutes=_pick(org.slot_step_minutes, defaults.slot_step_minutes),
            lock_ttl_seconds=_pick(org.lock_ttl_seconds, defaults.lock_ttl_seconds),
            modification_cutoff_minutes=_pick(
                org.modification_cutoff_minutes, defaults.modification_cutoff_minutes
            ),
            utc_offset_minutes=_pick(org.utc_offset_minutes, defaults.utc_offset_minutes),
            auto_confirm=_pick(org.auto_confirm, defaults.auto_confirm),
            min_advance_minutes=_pick(org.min_advance_minutes, defaults.min_advance_minutes),
            max_advance_days=_pick(org.max_advance_days, defaults.max_advance_days),
        )
