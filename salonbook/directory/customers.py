"""
Customer lookup and create-on-booking.

In production, this would query the salon CRM. Customers are unique per
organization by normalized phone number.
"""

import logging
import re
import threading
import uuid
from typing import Optional

from salonbook.schemas.appointment_schema import Customer, CustomerInfo
from salonbook.utils import normalize_phone

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15


def is_valid_phone(value: str) -> bool:
    digits = re.sub(r"[^\d]", "", value)
    return MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS


class CustomerDirectory:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._customers: dict[str, Customer] = {}

    def get(self, customer_id: str) -> Optional[Customer]:
        return self._customers.get(customer_id)

    def lookup(self, organization_id: str, phone: str) -> Optional[Customer]:
        """Look up a customer by phone number. Returns None if not found."""
        cleaned = normalize_phone(phone)
        for customer in self._customers.values():
            if customer.organization_id == organization_id and customer.phone == cleaned:
                return customer
        return None

    def find_or_create(self, organization_id: str, info: CustomerInfo) -> Customer:
        """Return the existing customer for this phone, refreshing name/email, or create one."""
        cleaned = normalize_phone(info.phone)
        with self._lock:
            existing = self.lookup(organization_id, cleaned)
            if existing is not None:
                updates = {}
                if existing.name != info.name:
                    updates["name"] = info.name
                if info.email and existing.email != info.email:
                    updates["email"] = info.email
                if updates:
                    existing = existing.model_copy(update=updates)
                    self._customers[existing.id] = existing
                return existing

            customer = Customer(
                id=f"cus_{uuid.uuid4().hex[:12]}",
                organization_id=organization_id,
                name=info.name,
                phone=cleaned,
                email=info.email,
            )
            self._customers[customer.id] = customer
        logger.info("New customer created: %s (%s)", customer.name, customer.id)
        return customer

    def record_visit_outcome(self, customer_id: str, completed: bool) -> None:
        """Bump visit or no-show counters after a terminal status."""
        with self._lock:
            customer = self._customers.get(customer_id)
            if customer is None:
                return
            if completed:
                customer = customer.model_copy(update={"total_visits": customer.total_visits + 1})
            else:
                customer = customer.model_copy(update={"no_show_count": customer.no_show_count + 1})
            self._customers[customer_id] = customer
