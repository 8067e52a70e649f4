"""Payment router for proof uploads and staff review."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import RequiredActor
from ..core.permissions import Actor
from ..models.booking import PaymentStage
from ..schemas.booking import Booking
from ..schemas.common import Problem
from ..schemas.payment import (
    Payment,
    RecordManualPaymentRequest,
    ReviewOutcome,
    ReviewPaymentRequest,
    UploadProofRequest,
)
from ..services.payment_service import PaymentService
from .converters import convert_booking_to_schema, convert_payment_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/upload-proof", response_model=Booking)
async def upload_proof(
    request: UploadProofRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Attach a payment screenshot reference to the advance or balance slot."""
    booking = await PaymentService(db).upload_proof(
        booking_id=request.booking_id,
        stage=PaymentStage(request.stage.value),
        asset_reference=request.asset_reference,
        actor=actor,
        transaction_note=request.transaction_note,
    )
    return JSONResponse(status_code=200, content=convert_booking_to_schema(booking).model_dump(mode="json"))


@router.post("/review", response_model=Booking, responses={409: {"model": Problem}})
async def review_payment(
    request: ReviewPaymentRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """
    Verify or reject an uploaded proof.

    Verifying the advance reserves the booking's seats; a full batch fails
    the verification with no change.
    """
    service = PaymentService(db)
    stage = PaymentStage(request.stage.value)
    if request.outcome == ReviewOutcome.APPROVE:
        booking = await service.verify(request.booking_id, stage, actor)
    else:
        booking = await service.reject(request.booking_id, stage, request.reason or "", actor)

    logger.info(
        "Payment review completed",
        extra={
            "booking_id": request.booking_id,
            "stage": stage.value,
            "outcome": request.outcome.value,
            "state": booking.state
        }
    )
    return JSONResponse(status_code=200, content=convert_booking_to_schema(booking).model_dump(mode="json"))


@router.post("/record-manual", response_model=Payment)
async def record_manual_payment(
    request: RecordManualPaymentRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Record money received outside the proof flow."""
    payment = await PaymentService(db).record_manual_payment(
        booking_id=request.booking_id,
        amount=request.amount,
        method=request.method.value,
        actor=actor,
        transaction_id=request.transaction_id,
        notes=request.notes,
    )
    return JSONResponse(status_code=200, content=convert_payment_to_schema(payment).model_dump(mode="json"))
