"""Batch and pricing Pydantic schemas."""

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class BadgeType(str, Enum):
    """Visual weight of a pricing badge."""
    SURGE = "surge"
    DISCOUNT = "discount"
    INFO = "info"


class PriceBadge(BaseModel):
    """Label shown next to a quoted price."""

    label: str = Field(..., description="Badge text, e.g. 'High Demand'")
    type: BadgeType = Field(..., description="Badge kind")


class PriceQuote(BaseModel):
    """Dynamic price for one traveller on one batch."""

    base_price: int = Field(..., ge=0, description="Price before adjustments, in rupees")
    effective_price: int = Field(..., ge=0, description="Price after adjustments, in rupees")
    adjustment_percent: int = Field(..., description="Net adjustment applied, clamped to the policy band")
    badges: list[PriceBadge] = Field(default_factory=list, description="Badges to display")


class BatchStatusValue(str, Enum):
    """Batch status values accepted over the API."""
    ACTIVE = "active"
    UPCOMING = "upcoming"
    CLOSED = "closed"
    COMPLETED = "completed"


class ListBatchesRequest(BaseModel):
    """Request schema for listing bookable batches of a trip."""

    trip_id: str = Field(..., description="Trip ID")
    pickup_location: str | None = Field(None, max_length=128, description="Origin used to pick the base price")


class BatchSummary(BaseModel):
    """Bookable batch with its current price quote."""

    id: str = Field(..., description="Unique batch ID")
    name: str = Field(..., description="Batch name")
    start_date: date = Field(..., description="Departure date")
    end_date: date = Field(..., description="Return date")
    batch_size: int = Field(..., ge=0, description="Total seats")
    seats_booked: int = Field(..., ge=0, description="Seats already reserved")
    available_seats: int = Field(..., ge=0, description="Seats still available")
    status: BatchStatusValue = Field(..., description="Batch status")
    pricing: PriceQuote = Field(..., description="Per-traveller price quote")


class ListBatchesResponse(BaseModel):
    """Response schema for the batch query."""

    items: list[BatchSummary] = Field(..., description="Active batches ordered by start date")


class CreateBatchRequest(BaseModel):
    """Request schema for scheduling a new batch."""

    trip_id: str = Field(..., description="Trip ID")
    name: str = Field(..., min_length=1, max_length=255, description="Batch name")
    start_date: date = Field(..., description="Departure date")
    end_date: date = Field(..., description="Return date")
    batch_size: int | None = Field(None, ge=1, le=500, description="Total seats; defaults to the trip capacity")
    price_override: int | None = Field(None, ge=0, description="Per-traveller price replacing the trip price")
    status: BatchStatusValue = Field(BatchStatusValue.ACTIVE, description="Initial status")

    @model_validator(mode="after")
    def check_dates(self) -> "CreateBatchRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class AdjustCapacityRequest(BaseModel):
    """Request schema for a staff capacity override."""

    batch_id: str = Field(..., description="Batch ID")
    delta: int = Field(..., description="Seats to add (positive) or remove (negative)")
    reason: str = Field(..., min_length=1, max_length=500, description="Why the capacity changed")


class SetBatchStatusRequest(BaseModel):
    """Request schema for a batch status flip."""

    batch_id: str = Field(..., description="Batch ID")
    status: BatchStatusValue = Field(..., description="New status")
    reason: str = Field(..., min_length=1, max_length=500, description="Why the status changed")


class Batch(BaseModel):
    """Batch response schema."""

    id: str = Field(..., description="Unique batch ID")
    trip_id: str = Field(..., description="Trip ID")
    name: str = Field(..., description="Batch name")
    start_date: date = Field(..., description="Departure date")
    end_date: date = Field(..., description="Return date")
    batch_size: int = Field(..., description="Total seats")
    seats_booked: int = Field(..., description="Seats already reserved")
    available_seats: int = Field(..., description="Seats still available")
    price_override: int | None = Field(None, description="Per-traveller price replacing the trip price")
    status: BatchStatusValue = Field(..., description="Batch status")
