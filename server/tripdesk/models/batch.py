"""Batch model definition."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking
    from .trip import Trip


class BatchStatus(str, Enum):
    """Batch lifecycle status."""
    ACTIVE = "active"
    UPCOMING = "upcoming"
    CLOSED = "closed"
    COMPLETED = "completed"


class Batch(Base):
    """Batch entity: one scheduled departure of a trip with fixed seat capacity."""

    __tablename__ = "batches"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    trip_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("trips.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Seat counters. available_seats is a cache of batch_size - seats_booked.
    batch_size: Mapped[int] = mapped_column(Integer, nullable=False)
    seats_booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_seats: Mapped[int | None] = mapped_column(Integer, nullable=True)

    price_override: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BatchStatus.ACTIVE.value, index=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("batch_size >= 0", name="ck_batch_size_non_negative"),
        CheckConstraint("seats_booked >= 0", name="ck_batch_seats_booked_non_negative"),
        CheckConstraint("seats_booked <= batch_size", name="ck_batch_seats_booked_lte_size"),
        CheckConstraint(
            "available_seats IS NULL OR available_seats = batch_size - seats_booked",
            name="ck_batch_available_seats_consistent"
        ),
        CheckConstraint("end_date >= start_date", name="ck_batch_dates_ordered"),
        CheckConstraint("price_override IS NULL OR price_override >= 0", name="ck_batch_price_override_non_negative"),
    )

    trip: Mapped["Trip"] = relationship("Trip", back_populates="batches")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="batch")

    @property
    def remaining_seats(self) -> int:
        """Seats left, derived from the counters rather than the cache."""
        return max(self.batch_size - self.seats_booked, 0)

    def __repr__(self) -> str:
        return (
            f"<Batch(id={self.id}, trip_id={self.trip_id}, start_date={self.start_date}, "
            f"seats={self.seats_booked}/{self.batch_size}, status={self.status})>"
        )
