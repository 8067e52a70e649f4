"""Background worker that queues balance reminders ahead of departure."""

import logging
from datetime import date
from typing import Optional

from ..core.clock import local_today
from ..core.database import async_session_factory
from ..services.notification_service import NotificationDispatcher, get_dispatcher
from ..services.payment_service import PaymentService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class BalanceReminderWorker(BaseWorker):
    """
    Sends one balance reminder per booking per day on the configured lead days.
    """

    def __init__(
        self,
        interval_seconds: int = 3600,
        session_factory=async_session_factory,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        super().__init__(name="BalanceReminder", interval_seconds=interval_seconds)
        self.session_factory = session_factory
        self.notifier = notifier
        self._sent: set[tuple[str, date]] = set()

    async def process(self, as_of: Optional[date] = None) -> int:
        as_of = as_of or local_today()
        notifier = self.notifier or get_dispatcher()

        # Forget reminders from earlier days
        self._sent = {key for key in self._sent if key[1] == as_of}

        async with self.session_factory() as db:
            reminders = await PaymentService(db, notifier).collect_balance_reminders(as_of)

        sent = 0
        for booking_id, payload in reminders:
            key = (booking_id, as_of)
            if key in self._sent:
                continue
            notifier.dispatch(payload)
            self._sent.add(key)
            sent += 1

        if sent:
            logger.info(
                f"Queued {sent} balance reminders",
                extra={"reminders": sent, "as_of": as_of.isoformat(), "worker": self.name}
            )
        return sent
