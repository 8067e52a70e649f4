"""Models module exporting all database models."""

from .audit import AuditLogEntry
from .batch import Batch, BatchStatus
from .booking import Booking, BookingState, PaymentStage, ProofStatus
from .payment import Payment, PaymentMethod, PaymentRecordStage, Refund, RefundStatus
from .trip import Trip

__all__ = [
    # Catalogue entities
    "Trip",
    "Batch",
    "BatchStatus",

    # Booking entities
    "Booking",
    "BookingState",
    "PaymentStage",
    "ProofStatus",

    # Money entities
    "Payment",
    "PaymentMethod",
    "PaymentRecordStage",
    "Refund",
    "RefundStatus",

    # Audit entity
    "AuditLogEntry",
]
