"""Payment verification and refund Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class ProofStage(str, Enum):
    """Proof slot targeted by an upload or review."""
    ADVANCE = "advance"
    BALANCE = "balance"


class ReviewOutcome(str, Enum):
    """Staff decision on an uploaded proof."""
    APPROVE = "approve"
    REJECT = "reject"


class PaymentMethodValue(str, Enum):
    """Payment methods accepted for manual entries."""
    UPI = "upi"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    OTHER = "other"


class UploadProofRequest(BaseModel):
    """Request schema for attaching a payment screenshot."""

    booking_id: str = Field(..., description="Booking the proof belongs to")
    stage: ProofStage = Field(..., description="advance or balance")
    asset_reference: str = Field(..., min_length=1, max_length=512, description="Opaque storage reference")
    transaction_note: str | None = Field(None, max_length=500, description="UPI reference or other note")


class ReviewPaymentRequest(BaseModel):
    """Request schema for verifying or rejecting a proof."""

    booking_id: str = Field(..., description="Booking under review")
    stage: ProofStage = Field(..., description="advance or balance")
    outcome: ReviewOutcome = Field(..., description="approve or reject")
    reason: str | None = Field(None, max_length=1000, description="Required when rejecting")

    @model_validator(mode="after")
    def reason_required_on_reject(self) -> "ReviewPaymentRequest":
        if self.outcome == ReviewOutcome.REJECT and not (self.reason and self.reason.strip()):
            raise ValueError("A reason is required when rejecting a payment proof")
        return self


class RecordManualPaymentRequest(BaseModel):
    """Request schema for recording money received outside the proof flow."""

    booking_id: str = Field(..., description="Booking the payment settles")
    amount: int = Field(..., gt=0, description="Amount received in rupees")
    method: PaymentMethodValue = Field(PaymentMethodValue.CASH, description="How the money was received")
    transaction_id: str | None = Field(None, max_length=128, description="External transaction reference")
    notes: str | None = Field(None, max_length=500, description="Free-form notes")


class ProcessRefundRequest(BaseModel):
    """Request schema for marking a refund as paid out."""

    refund_id: str = Field(..., description="Refund to process")


class Payment(BaseModel):
    """Payment response schema."""

    id: str = Field(..., description="Unique payment ID")
    booking_id: str = Field(..., description="Booking ID")
    amount: int = Field(..., description="Amount in rupees")
    method: str = Field(..., description="Payment method")
    stage: str = Field(..., description="advance, balance or manual")
    status: str = Field(..., description="Payment status")
    transaction_id: str | None = Field(None, description="External transaction reference")
    recorded_by: str = Field(..., description="Staff member who recorded the payment")
    created_at: datetime = Field(..., description="Record time (ISO 8601)")


class Refund(BaseModel):
    """Refund response schema."""

    id: str = Field(..., description="Unique refund ID")
    booking_id: str = Field(..., description="Booking ID")
    amount: int = Field(..., description="Amount in rupees")
    status: str = Field(..., description="pending or processed")
    reason: str = Field(..., description="Cancellation reason")
    created_at: datetime = Field(..., description="Creation time (ISO 8601)")
    processed_at: datetime | None = Field(None, description="Processing time (ISO 8601)")
    processed_by: str | None = Field(None, description="Staff member who processed the refund")
