"""Booking-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .common import Contact
from .payment import Refund


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    trip_id: str = Field(..., description="Trip to book")
    batch_id: str | None = Field(None, description="Batch to travel with")
    traveller_count: int = Field(..., ge=1, description="Number of travellers")
    total_amount: int | None = Field(None, ge=0, description="Agreed total in rupees; quoted when omitted")
    pickup_location: str | None = Field(None, max_length=128, description="Pickup origin")
    contact: Contact = Field(..., description="Lead traveller contact details")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str = Field(..., description="Booking to retrieve")


class ListMyBookingsRequest(BaseModel):
    """Request schema for the traveller's own bookings."""

    limit: int = Field(50, ge=1, le=200, description="Maximum bookings to return")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., description="Booking to cancel")
    reason: str = Field(..., max_length=1000, description="Why the booking is being cancelled")
    refund_amount: int = Field(0, ge=0, description="Refund owed to the traveller in rupees")
    elevated_confirmation: bool = Field(
        False,
        description="Staff confirmation required for cancellations close to departure"
    )

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("A cancellation reason is required")
        return v.strip()


class DeleteBookingRequest(BaseModel):
    """Request schema for deleting a booking."""

    booking_id: str = Field(..., description="Booking to delete")
    permanent: bool = Field(False, description="Remove the row and its payments instead of hiding it")


class ProofSlot(BaseModel):
    """One payment proof slot (advance or balance)."""

    asset_reference: str | None = Field(None, description="Opaque reference to the uploaded screenshot")
    status: str = Field(..., description="pending, uploaded, verified or rejected")
    transaction_note: str | None = Field(None, description="Traveller-supplied transaction note")
    uploaded_at: datetime | None = Field(None, description="Upload time (ISO 8601)")
    verified_at: datetime | None = Field(None, description="Verification time (ISO 8601)")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    trip_id: str = Field(..., description="Trip ID")
    batch_id: str | None = Field(None, description="Batch ID")
    user_id: str | None = Field(None, description="Owning user")
    full_name: str = Field(..., description="Lead traveller's name")
    email: str = Field(..., description="Contact email")
    phone: str = Field(..., description="Contact phone")
    pickup_location: str | None = Field(None, description="Pickup origin")
    traveller_count: int = Field(..., ge=1, description="Number of travellers")
    total_amount: int = Field(..., description="Total in rupees")
    advance_amount: int = Field(..., description="Advance due in rupees")
    advance_paid: int = Field(..., description="Advance received in rupees")
    balance_due: int = Field(..., description="Outstanding balance in rupees")
    seats_held: int = Field(..., description="Seats currently reserved for this booking")
    state: str = Field(..., description="Lifecycle state")
    booking_status: str = Field(..., description="Legacy booking status projection")
    payment_status: str = Field(..., description="Legacy payment status projection")
    advance_proof: ProofSlot = Field(..., description="Advance proof slot")
    balance_proof: ProofSlot = Field(..., description="Balance proof slot")
    rejection_reason: str | None = Field(None, description="Reason given for the last rejected proof")
    cancellation_reason: str | None = Field(None, description="Reason the booking was cancelled")
    cancelled_at: datetime | None = Field(None, description="Cancellation time (ISO 8601)")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")


class ListBookingsResponse(BaseModel):
    """Response schema for booking listings."""

    items: list[Booking] = Field(..., description="Bookings, newest first")


class CancelBookingResponse(BaseModel):
    """Response schema for a cancellation."""

    booking: Booking = Field(..., description="Cancelled booking")
    refund: Refund = Field(..., description="Refund obligation created by the cancellation")
