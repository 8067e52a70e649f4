"""Booking model and lifecycle enumerations."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .batch import Batch
    from .payment import Payment, Refund
    from .trip import Trip


class BookingState(str, Enum):
    """Single source of truth for where a booking is in its lifecycle."""
    INITIATED = "initiated"
    AWAITING_ADVANCE = "awaiting_advance"
    ADVANCE_VERIFIED = "advance_verified"
    BALANCE_PENDING = "balance_pending"
    FULLY_PAID = "fully_paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    EXPIRED = "expired"

    @property
    def booking_status(self) -> str:
        return _STATUS_PROJECTIONS[self][0]

    @property
    def payment_status(self) -> str:
        return _STATUS_PROJECTIONS[self][1]

    @property
    def is_terminal(self) -> bool:
        return self in (BookingState.REFUNDED, BookingState.EXPIRED)


# state -> (booking_status, payment_status) as shown to travellers and staff
_STATUS_PROJECTIONS: dict[BookingState, tuple[str, str]] = {
    BookingState.INITIATED: ("initiated", "pending"),
    BookingState.AWAITING_ADVANCE: ("pending", "pending_advance"),
    BookingState.ADVANCE_VERIFIED: ("confirmed", "advance_verified"),
    BookingState.BALANCE_PENDING: ("confirmed", "balance_pending"),
    BookingState.FULLY_PAID: ("confirmed", "fully_paid"),
    BookingState.CANCELLED: ("cancelled", "cancelled"),
    BookingState.REFUNDED: ("refunded", "refunded"),
    BookingState.EXPIRED: ("expired", "expired"),
}


class ProofStatus(str, Enum):
    """Status of one payment proof slot."""
    PENDING = "pending"
    UPLOADED = "uploaded"
    VERIFIED = "verified"
    REJECTED = "rejected"


class PaymentStage(str, Enum):
    """Which of the two proof slots an operation targets."""
    ADVANCE = "advance"
    BALANCE = "balance"


class Booking(Base):
    """Booking entity: a traveller's claim on seats in a batch plus its payment trail."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    trip_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("trips.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    batch_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("batches.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)

    # Contact
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    pickup_location: Mapped[str | None] = mapped_column(String(128), nullable=True)

    traveller_count: Mapped[int] = mapped_column(Integer, nullable=False)

    # Money, whole rupees
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    advance_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    advance_paid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # 0 or traveller_count
    seats_held: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    state: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=BookingState.INITIATED.value,
        index=True
    )

    # Advance proof slot
    advance_proof_ref: Mapped[str | None] = mapped_column(String(512), nullable=True)
    advance_proof_status: Mapped[str] = mapped_column(String(16), nullable=False, default=ProofStatus.PENDING.value)
    advance_proof_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    advance_uploaded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    advance_verified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Balance proof slot
    balance_proof_ref: Mapped[str | None] = mapped_column(String(512), nullable=True)
    balance_proof_status: Mapped[str] = mapped_column(String(16), nullable=False, default=ProofStatus.PENDING.value)
    balance_proof_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    balance_uploaded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    balance_verified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("traveller_count > 0", name="ck_booking_traveller_count_positive"),
        CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("advance_amount >= 0", name="ck_booking_advance_non_negative"),
        CheckConstraint("advance_paid >= 0", name="ck_booking_advance_paid_non_negative"),
        CheckConstraint(
            "seats_held = 0 OR seats_held = traveller_count",
            name="ck_booking_seats_held_all_or_nothing"
        ),
        CheckConstraint("length(full_name) > 0", name="ck_booking_full_name_not_empty"),
    )

    trip: Mapped["Trip"] = relationship("Trip")
    batch: Mapped["Batch | None"] = relationship("Batch", back_populates="bookings")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="booking",
        cascade="all, delete-orphan"
    )
    refunds: Mapped[list["Refund"]] = relationship(
        "Refund",
        back_populates="booking",
        cascade="all, delete-orphan"
    )

    @property
    def lifecycle_state(self) -> BookingState:
        return BookingState(self.state)

    @property
    def booking_status(self) -> str:
        return self.lifecycle_state.booking_status

    @property
    def payment_status(self) -> str:
        return self.lifecycle_state.payment_status

    @property
    def balance_due(self) -> int:
        return max(self.total_amount - self.advance_paid, 0)

    def proof_ref(self, stage: PaymentStage) -> str | None:
        return getattr(self, f"{stage.value}_proof_ref")

    def proof_status(self, stage: PaymentStage) -> ProofStatus:
        return ProofStatus(getattr(self, f"{stage.value}_proof_status"))

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, batch_id={self.batch_id}, travellers={self.traveller_count}, "
            f"state={self.state}, seats_held={self.seats_held})>"
        )
