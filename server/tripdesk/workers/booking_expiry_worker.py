"""Background worker that expires abandoned bookings."""

import logging
from datetime import datetime
from typing import Optional

from ..core.clock import utcnow
from ..core.database import async_session_factory
from ..services.booking_service import BookingService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class BookingExpiryWorker(BaseWorker):
    """
    Expires bookings left in the initiated state past their TTL.

    Initiated bookings hold no seats, so expiry only closes them out.
    """

    def __init__(self, interval_seconds: int = 300, session_factory=async_session_factory):
        super().__init__(name="BookingExpiry", interval_seconds=interval_seconds)
        self.session_factory = session_factory

    async def process(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        async with self.session_factory() as db:
            expired_count = await BookingService(db).expire_stale_bookings(now=now)

        if expired_count > 0:
            logger.info(
                f"Expired {expired_count} bookings",
                extra={
                    "expired_count": expired_count,
                    "timestamp": now.isoformat(),
                    "worker": self.name,
                }
            )
        return expired_count
