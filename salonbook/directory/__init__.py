from salonbook.directory.customers import CustomerDirectory
from salonbook.directory.notifications import NotificationDispatcher, NotificationEvent, NotificationType
from salonbook.directory.organizations import BookingPolicy, OrganizationDirectory
from salonbook.directory.services import ServiceCatalog
from salonbook.directory.staff import StaffDirectory

__all__ = [
    "BookingPolicy",
    "CustomerDirectory",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationType",
    "OrganizationDirectory",
    "ServiceCatalog",
    "StaffDirectory",
]
