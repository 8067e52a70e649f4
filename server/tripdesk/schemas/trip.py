"""Trip-related Pydantic schemas."""

from pydantic import BaseModel, Field, field_validator


class CreateTripRequest(BaseModel):
    """Request schema for creating a trip."""

    name: str = Field(..., min_length=1, max_length=255, description="Trip name")
    slug: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9-]+$", description="URL-friendly slug")
    summary: str | None = Field(None, max_length=2000, description="Short trip summary")
    default_price: int = Field(..., ge=0, description="Per-traveller price in rupees")
    origin_prices: dict[str, int] = Field(default_factory=dict, description="Pickup origin to per-traveller price")
    advance_per_traveller: int | None = Field(None, ge=0, description="Advance due per traveller in rupees")
    default_capacity: int = Field(20, ge=1, le=500, description="Seats offered by a new batch")
    is_active: bool = Field(True, description="Whether the trip is listed")
    booking_live: bool = Field(True, description="Whether the trip accepts bookings")

    @field_validator("origin_prices")
    @classmethod
    def normalise_origins(cls, v: dict[str, int]) -> dict[str, int]:
        if any(price < 0 for price in v.values()):
            raise ValueError("Origin prices must not be negative")
        return {origin.strip().lower(): price for origin, price in v.items()}


class GetTripRequest(BaseModel):
    """Request schema for fetching a trip."""

    trip_id: str = Field(..., description="Trip ID")


class Trip(BaseModel):
    """Trip response schema."""

    id: str = Field(..., description="Unique trip ID")
    name: str = Field(..., description="Trip name")
    slug: str = Field(..., description="URL-friendly slug")
    summary: str | None = Field(None, description="Short trip summary")
    default_price: int = Field(..., description="Per-traveller price in rupees")
    origin_prices: dict[str, int] = Field(..., description="Pickup origin to per-traveller price")
    advance_per_traveller: int | None = Field(None, description="Advance due per traveller in rupees")
    default_capacity: int = Field(..., description="Seats offered by a new batch")
    is_active: bool = Field(..., description="Whether the trip is listed")
    booking_live: bool = Field(..., description="Whether the trip accepts bookings")
