"""Payment and Refund model definitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking


class PaymentMethod(str, Enum):
    """How the money reached the operator."""
    UPI = "upi"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    OTHER = "other"


class PaymentRecordStage(str, Enum):
    """Stage a payment row settles."""
    ADVANCE = "advance"
    BALANCE = "balance"
    MANUAL = "manual"


class RefundStatus(str, Enum):
    """Refund obligation status."""
    PENDING = "pending"
    PROCESSED = "processed"


class Payment(Base):
    """A verified receipt of money against one booking."""

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False, default=PaymentMethod.UPI.value)
    stage: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="verified")
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payment_amount_non_negative"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payments")

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, booking_id={self.booking_id}, amount={self.amount}, "
            f"stage={self.stage}, method={self.method})>"
        )


class Refund(Base):
    """Money owed back to a traveller after cancellation."""

    __tablename__ = "refunds"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=RefundStatus.PENDING.value, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_refund_amount_non_negative"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="refunds")

    def __repr__(self) -> str:
        return f"<Refund(id={self.id}, booking_id={self.booking_id}, amount={self.amount}, status={self.status})>"
