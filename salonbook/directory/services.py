"""Service catalog with durations and prices."""

import logging
from typing import Optional

from salonbook.schemas.directory_schema import Service

logger = logging.getLogger(__name__)


class ServiceCatalog:
    def __init__(self) -> None:
        self._services: dict[str, Service] = {}

    def add(self, service: Service) -> Service:
        self._services[service.id] = service
        return service

    def get_service(self, organization_id: str, service_id: str) -> Optional[Service]:
        service = self._services.get(service_id)
        if service is None or service.organization_id != organization_id:
            return None
        return service

    def get_services(self, organization_id: str, service_ids: list[str]) -> Optional[list[Service]]:
        """Return the services in request order, or None if any is unknown or inactive."""
        found = []
        for sid in service_ids:
            service = self.get_service(organization_id, sid)
            if service is None or service.status != "active":
                logger.debug("Service %s unavailable in org %s", sid, organization_id)
                return None
            found.append(service)
        return found

    def get_service_durations(self, organization_id: str, service_ids: list[str]) -> Optional[int]:
        """Total back-to-back duration in minutes, or None if a service is invalid."""
        services = self.get_services(organization_id, service_ids)
        if services is None:
            return None
        return sum(s.duration for s in services)
