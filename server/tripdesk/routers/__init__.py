"""FastAPI routers package."""

from .audit import router as audit_router
from .batch import router as batch_router
from .booking import router as booking_router
from .health import router as health_router
from .metrics import router as metrics_router
from .payment import router as payment_router
from .reconciliation import router as reconciliation_router
from .refund import router as refund_router
from .trip import router as trip_router

__all__ = [
    "audit_router",
    "batch_router",
    "booking_router",
    "health_router",
    "metrics_router",
    "payment_router",
    "reconciliation_router",
    "refund_router",
    "trip_router",
]
