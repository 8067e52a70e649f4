"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..core.config import settings
from .balance_reminder_worker import BalanceReminderWorker
from .base import BaseWorker
from .booking_expiry_worker import BookingExpiryWorker
from .reconciliation_worker import ReconciliationWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting, stopping, and monitoring of all background workers.
    """

    def __init__(self):
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers()

    def _setup_workers(self) -> None:
        """Initialize all workers from settings."""
        self.workers["booking_expiry"] = BookingExpiryWorker(
            interval_seconds=settings.expiry_worker_interval_seconds
        )
        self.workers["balance_reminder"] = BalanceReminderWorker(
            interval_seconds=settings.reminder_worker_interval_seconds
        )
        self.workers["reconciliation"] = ReconciliationWorker(
            interval_seconds=settings.reconciliation_worker_interval_seconds
        )

        logger.info(f"Initialized {len(self.workers)} workers")

    async def start_all(self) -> None:
        """Start all workers."""
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {str(e)}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True
        )

        for name, result in zip(self.workers.keys(), results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {str(result)}")

        logger.info("All workers stopped")

    def get_worker_status(self) -> Dict[str, bool]:
        """Map worker names to their running status."""
        return {name: worker.is_running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
