"""Refund router."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import RequiredActor
from ..core.permissions import Actor
from ..schemas.payment import ProcessRefundRequest, Refund
from ..services.cancellation_service import CancellationService
from .converters import convert_refund_to_schema

router = APIRouter(prefix="/v1/refund", tags=["refund"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/process", response_model=Refund)
async def process_refund(
    request: ProcessRefundRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Mark a pending refund as paid out; the booking becomes refunded."""
    refund, _ = await CancellationService(db).process_refund(request.refund_id, actor)
    return JSONResponse(status_code=200, content=convert_refund_to_schema(refund).model_dump(mode="json"))
