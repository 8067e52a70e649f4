"""Background worker that sweeps the ledger for reconciliation mismatches."""

import logging

from ..core.database import async_session_factory
from ..core.observability import metrics_collector
from ..services.reconciliation_service import ReconciliationService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class ReconciliationWorker(BaseWorker):
    """Exports mismatch counts per kind; never corrects anything."""

    def __init__(self, interval_seconds: int = 900, session_factory=async_session_factory):
        super().__init__(name="Reconciliation", interval_seconds=interval_seconds)
        self.session_factory = session_factory

    async def process(self) -> dict[str, int]:
        async with self.session_factory() as db:
            counts = await ReconciliationService(db).sweep()

        metrics_collector.set_reconciliation_mismatches(counts)
        total = sum(counts.values())
        if total:
            logger.warning(
                f"Reconciliation sweep found {total} mismatches",
                extra={"worker": self.name, **counts}
            )
        return counts
