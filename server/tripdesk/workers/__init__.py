"""Background workers for the booking engine."""

from .balance_reminder_worker import BalanceReminderWorker
from .booking_expiry_worker import BookingExpiryWorker
from .reconciliation_worker import ReconciliationWorker

__all__ = ["BalanceReminderWorker", "BookingExpiryWorker", "ReconciliationWorker"]
