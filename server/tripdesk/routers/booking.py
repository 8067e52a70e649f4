"""Booking router for booking operations."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import RequiredActor
from ..core.permissions import Actor
from ..schemas.booking import (
    Booking,
    CancelBookingRequest,
    CancelBookingResponse,
    CreateBookingRequest,
    DeleteBookingRequest,
    GetBookingRequest,
    ListBookingsResponse,
    ListMyBookingsRequest,
)
from ..schemas.common import Problem
from ..services.booking_service import BookingService
from ..services.cancellation_service import CancellationService
from .converters import convert_booking_to_schema, convert_refund_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/create", response_model=Booking, responses={409: {"model": Problem}})
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """
    Create a booking in the initiated state.

    No seats are held until the advance payment is verified.
    """
    booking = await BookingService(db).create_booking(request, actor)
    return JSONResponse(
        status_code=200,
        content=convert_booking_to_schema(booking).model_dump(mode="json")
    )


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Get booking details."""
    booking = await BookingService(db).get_booking(request.booking_id, actor)
    return JSONResponse(
        status_code=200,
        content=convert_booking_to_schema(booking).model_dump(mode="json")
    )


@router.post("/mine", response_model=ListBookingsResponse)
async def list_my_bookings(
    request: ListMyBookingsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """The caller's own bookings, newest first."""
    bookings = await BookingService(db).list_my_bookings(actor, limit=request.limit)
    response_data = ListBookingsResponse(items=[convert_booking_to_schema(b) for b in bookings])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post(
    "/cancel",
    response_model=CancelBookingResponse,
    responses={409: {"model": Problem}, 428: {"model": Problem}},
)
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """
    Cancel a booking, releasing held seats and recording the refund owed.

    Within the late-cancellation window a staff member must set
    ``elevated_confirmation``.
    """
    booking, refund = await CancellationService(db).cancel(
        booking_id=request.booking_id,
        reason=request.reason,
        refund_amount=request.refund_amount,
        actor=actor,
        elevated_confirmation=request.elevated_confirmation,
    )
    response_data = CancelBookingResponse(
        booking=convert_booking_to_schema(booking),
        refund=convert_refund_to_schema(refund),
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/delete")
async def delete_booking(
    request: DeleteBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Hide a booking, or remove it permanently (super admins only)."""
    service = BookingService(db)
    if request.permanent:
        released = await service.hard_delete(request.booking_id, actor)
        return JSONResponse(
            status_code=200,
            content={"booking_id": request.booking_id, "deleted": "permanent", "seats_released": released}
        )

    booking = await service.soft_delete(request.booking_id, actor)
    return JSONResponse(
        status_code=200,
        content={"booking_id": request.booking_id, "deleted": "soft", "state": booking.state}
    )
