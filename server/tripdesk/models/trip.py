"""Trip model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .batch import Batch


class Trip(Base):
    """Trip entity representing a sellable itinerary template."""

    __tablename__ = "trips"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Prices are whole rupees
    default_price: Mapped[int] = mapped_column(Integer, nullable=False)
    # Pickup origin (lowercase) -> price, e.g. {"pune": 5499}
    origin_prices: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    advance_per_traveller: Mapped[int | None] = mapped_column(Integer, nullable=True)
    default_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=20)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    booking_live: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("default_price >= 0", name="ck_trip_default_price_non_negative"),
        CheckConstraint("advance_per_traveller IS NULL OR advance_per_traveller >= 0", name="ck_trip_advance_non_negative"),
        CheckConstraint("default_capacity > 0", name="ck_trip_default_capacity_positive"),
    )

    batches: Mapped[list["Batch"]] = relationship("Batch", back_populates="trip")

    @property
    def is_bookable(self) -> bool:
        return self.is_active and self.booking_live

    def price_for_origin(self, pickup_location: str | None) -> int:
        """Base price for a pickup origin, falling back to the default price."""
        if pickup_location:
            price = (self.origin_prices or {}).get(pickup_location.strip().lower())
            if price is not None:
                return int(price)
        return self.default_price

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, name='{self.name}', slug='{self.slug}')>"
