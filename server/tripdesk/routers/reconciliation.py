"""Reconciliation report router."""

from dataclasses import asdict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import RequiredActor
from ..core.permissions import Actor
from ..schemas.reconciliation import (
    Mismatch,
    ReconciliationReportRequest,
    ReconciliationReportResponse,
    RevenueBreakdown,
)
from ..services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/v1/reconciliation", tags=["reconciliation"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/report", response_model=ReconciliationReportResponse)
async def reconciliation_report(
    request: ReconciliationReportRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """
    Flag bookings whose status disagrees with recorded payments and refunds.

    Read only: mismatches are never corrected here.
    """
    report = await ReconciliationService(db).build_report(
        actor,
        date_from=request.date_from,
        date_to=request.date_to,
        trip_id=request.trip_id,
        payment_status=request.payment_status,
        refund_filter=request.refund_filter.value if request.refund_filter else None,
        include_deleted=request.include_deleted,
    )
    response_data = ReconciliationReportResponse(
        generated_at=report.generated_at,
        bookings_examined=report.bookings_examined,
        mismatches=[Mismatch(**asdict(m)) for m in report.mismatches],
        mismatch_counts=report.mismatch_counts,
        revenue=RevenueBreakdown(**asdict(report.revenue)),
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
