"""Service layer package."""

from .audit_service import AuditService
from .booking_service import BookingService
from .cancellation_service import CancellationService
from .inventory_service import InventoryService
from .notification_service import NotificationDispatcher
from .payment_service import PaymentService
from .reconciliation_service import ReconciliationService
from .trip_service import TripService

__all__ = [
    "AuditService",
    "BookingService",
    "CancellationService",
    "InventoryService",
    "NotificationDispatcher",
    "PaymentService",
    "ReconciliationService",
    "TripService",
]
