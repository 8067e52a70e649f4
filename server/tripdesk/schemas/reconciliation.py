"""Reconciliation report Pydantic schemas."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class RefundFilter(str, Enum):
    """Refund-based booking filters."""
    HAS_REFUND = "has_refund"
    NO_REFUND = "no_refund"
    PENDING_REFUND = "pending_refund"
    PROCESSED_REFUND = "processed_refund"


class ReconciliationReportRequest(BaseModel):
    """Request schema for the reconciliation report."""

    date_from: date | None = Field(None, description="Bookings created on or after this date")
    date_to: date | None = Field(None, description="Bookings created on or before this date")
    trip_id: str | None = Field(None, description="Restrict to one trip")
    payment_status: str | None = Field(None, description="Restrict to one payment status")
    refund_filter: RefundFilter | None = Field(None, description="Restrict by refund presence or status")
    include_deleted: bool = Field(False, description="Include soft-deleted bookings")


class Mismatch(BaseModel):
    """One ledger discrepancy."""

    booking_id: str = Field(..., description="Booking ID")
    kind: str = Field(..., description="Mismatch kind")
    description: str = Field(..., description="Human-readable explanation")
    booking_amount: int = Field(..., description="Booking total in rupees")
    payment_amount: int = Field(..., description="Sum of recorded payments in rupees")


class RevenueBreakdown(BaseModel):
    """Money totals over confirmed and refunded bookings."""

    booking_count: int = Field(..., description="Bookings counted")
    gross_revenue: int = Field(..., description="Sum of booking totals")
    payments_received: int = Field(..., description="Sum of recorded payments")
    refunds_issued: int = Field(..., description="Sum of refunds")
    net_revenue: int = Field(..., description="Payments minus refunds")
    advance_collected: int = Field(..., description="Sum of advances paid")
    outstanding_balance: int = Field(..., description="Gross revenue minus payments")


class ReconciliationReportResponse(BaseModel):
    """Response schema for the reconciliation report."""

    generated_at: datetime = Field(..., description="Report time (ISO 8601)")
    bookings_examined: int = Field(..., description="Bookings matching the filters")
    mismatches: list[Mismatch] = Field(..., description="Detected discrepancies")
    mismatch_counts: dict[str, int] = Field(..., description="Mismatch count per kind")
    revenue: RevenueBreakdown = Field(..., description="Revenue breakdown")
