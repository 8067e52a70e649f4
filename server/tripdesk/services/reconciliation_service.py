"""Reconciliation of booking statuses against recorded payments and refunds.

``detect_mismatches`` is a pure function over plain rows so it can run on
data from any source. Mismatches are diagnostics only; nothing here writes.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.permissions import Actor, Permission, require_permission
from ..models.booking import Booking
from ..models.payment import Payment, Refund
from .common import format_inr, parse_uuid

logger = logging.getLogger(__name__)

PAID_NO_PAYMENT_RECORD = "paid_no_payment_record"
AMOUNT_MISMATCH = "amount_mismatch"
REFUND_NOT_MARKED = "refund_not_marked"
CONFIRMED_NO_PAYMENT = "confirmed_no_payment"

MISMATCH_KINDS = (PAID_NO_PAYMENT_RECORD, AMOUNT_MISMATCH, REFUND_NOT_MARKED, CONFIRMED_NO_PAYMENT)


@dataclass(frozen=True)
class BookingRow:
    id: str
    booking_status: str
    payment_status: str
    total_amount: int
    advance_paid: int
    trip_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class PaymentRow:
    booking_id: str
    amount: int


@dataclass(frozen=True)
class RefundRow:
    booking_id: str
    amount: int
    status: str


@dataclass(frozen=True)
class MismatchRecord:
    booking_id: str
    kind: str
    description: str
    booking_amount: int
    payment_amount: int


@dataclass(frozen=True)
class RevenueSummary:
    booking_count: int
    gross_revenue: int
    payments_received: int
    refunds_issued: int
    net_revenue: int
    advance_collected: int
    outstanding_balance: int


def _group_by_booking(rows: Iterable) -> dict[str, list]:
    grouped: dict[str, list] = defaultdict(list)
    for row in rows:
        grouped[row.booking_id].append(row)
    return grouped


def detect_mismatches(
    bookings: Iterable[BookingRow],
    payments: Iterable[PaymentRow],
    refunds: Iterable[RefundRow],
) -> list[MismatchRecord]:
    """
    Flag bookings whose status disagrees with the money recorded against them.

    A booking can produce more than one mismatch. Bookings are reported in
    input order.
    """
    payments_by_booking = _group_by_booking(payments)
    refunds_by_booking = _group_by_booking(refunds)
    issues: list[MismatchRecord] = []

    for booking in bookings:
        booking_payments = payments_by_booking.get(booking.id, [])
        booking_refunds = refunds_by_booking.get(booking.id, [])
        total_paid = sum(p.amount for p in booking_payments)

        if booking.payment_status == "fully_paid" and not booking_payments:
            issues.append(MismatchRecord(
                booking_id=booking.id,
                kind=PAID_NO_PAYMENT_RECORD,
                description="Booking marked as fully paid but no payment records found.",
                booking_amount=booking.total_amount,
                payment_amount=0,
            ))

        if booking.payment_status == "fully_paid" and booking_payments and total_paid != booking.total_amount:
            issues.append(MismatchRecord(
                booking_id=booking.id,
                kind=AMOUNT_MISMATCH,
                description=(
                    f"Payment total ({format_inr(total_paid)}) doesn't match "
                    f"booking amount ({format_inr(booking.total_amount)})."
                ),
                booking_amount=booking.total_amount,
                payment_amount=total_paid,
            ))

        if any(r.status == "processed" for r in booking_refunds) and booking.booking_status != "refunded":
            issues.append(MismatchRecord(
                booking_id=booking.id,
                kind=REFUND_NOT_MARKED,
                description="Processed refund exists but booking is not marked as refunded.",
                booking_amount=booking.total_amount,
                payment_amount=total_paid,
            ))

        if (
            booking.booking_status == "confirmed"
            and booking.payment_status == "pending"
            and not booking_payments
            and booking.advance_paid == 0
        ):
            issues.append(MismatchRecord(
                booking_id=booking.id,
                kind=CONFIRMED_NO_PAYMENT,
                description="Booking is confirmed but has no payment recorded.",
                booking_amount=booking.total_amount,
                payment_amount=0,
            ))

    return issues


def summarise_revenue(
    bookings: Iterable[BookingRow],
    payments: Iterable[PaymentRow],
    refunds: Iterable[RefundRow],
) -> RevenueSummary:
    """Revenue totals over confirmed and refunded bookings."""
    payments_by_booking = _group_by_booking(payments)
    refunds_by_booking = _group_by_booking(refunds)
    counted = [b for b in bookings if b.booking_status in ("confirmed", "refunded")]

    gross = sum(b.total_amount for b in counted)
    received = sum(p.amount for b in counted for p in payments_by_booking.get(b.id, []))
    refunded = sum(r.amount for b in counted for r in refunds_by_booking.get(b.id, []))

    return RevenueSummary(
        booking_count=len(counted),
        gross_revenue=gross,
        payments_received=received,
        refunds_issued=refunded,
        net_revenue=received - refunded,
        advance_collected=sum(b.advance_paid for b in counted),
        outstanding_balance=gross - received,
    )


def count_by_kind(mismatches: Iterable[MismatchRecord]) -> dict[str, int]:
    counts = Counter(m.kind for m in mismatches)
    return {kind: counts.get(kind, 0) for kind in MISMATCH_KINDS}


def _booking_row(booking: Booking) -> BookingRow:
    return BookingRow(
        id=str(booking.id),
        booking_status=booking.booking_status,
        payment_status=booking.payment_status,
        total_amount=booking.total_amount,
        advance_paid=booking.advance_paid,
        trip_id=str(booking.trip_id),
        created_at=booking.created_at,
    )


@dataclass
class ReconciliationReport:
    generated_at: datetime
    bookings_examined: int
    mismatches: list[MismatchRecord]
    mismatch_counts: dict[str, int]
    revenue: RevenueSummary


class ReconciliationService:
    """Service that loads the ledger and runs reconciliation over it."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_ledger(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        trip_id: Optional[UUID] = None,
        include_deleted: bool = False,
    ) -> tuple[list[BookingRow], list[PaymentRow], list[RefundRow]]:
        """Bookings in range with every payment and refund linked to them."""
        stmt = select(Booking)
        if not include_deleted:
            stmt = stmt.where(Booking.is_deleted.is_(False))
        if date_from:
            stmt = stmt.where(Booking.created_at >= datetime.combine(date_from, time.min))
        if date_to:
            stmt = stmt.where(Booking.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
        if trip_id:
            stmt = stmt.where(Booking.trip_id == trip_id)
        stmt = stmt.order_by(Booking.created_at)

        bookings = list((await self.db.execute(stmt)).scalars())
        booking_ids = [b.id for b in bookings]
        if not booking_ids:
            return [], [], []

        payment_result = await self.db.execute(
            select(Payment.booking_id, Payment.amount).where(Payment.booking_id.in_(booking_ids))
        )
        refund_result = await self.db.execute(
            select(Refund.booking_id, Refund.amount, Refund.status).where(Refund.booking_id.in_(booking_ids))
        )

        return (
            [_booking_row(b) for b in bookings],
            [PaymentRow(booking_id=str(bid), amount=amount) for bid, amount in payment_result.all()],
            [RefundRow(booking_id=str(bid), amount=amount, status=status) for bid, amount, status in refund_result.all()],
        )

    async def build_report(
        self,
        actor: Actor,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        trip_id: Optional[str] = None,
        payment_status: Optional[str] = None,
        refund_filter: Optional[str] = None,
        include_deleted: bool = False,
    ) -> ReconciliationReport:
        """
        Reconciliation report over the filtered bookings.

        Raises:
            AuthorizationError: If the actor cannot view financial data
        """
        require_permission(actor, Permission.VIEW_FINANCIAL_DATA)

        bookings, payments, refunds = await self.load_ledger(
            date_from=date_from,
            date_to=date_to,
            trip_id=parse_uuid(trip_id, "trip_id") if trip_id else None,
            include_deleted=include_deleted,
        )

        if payment_status:
            bookings = [b for b in bookings if b.payment_status == payment_status]
        if refund_filter:
            refunds_by_booking = _group_by_booking(refunds)
            bookings = [b for b in bookings if _matches_refund_filter(refunds_by_booking.get(b.id, []), refund_filter)]

        mismatches = detect_mismatches(bookings, payments, refunds)
        report = ReconciliationReport(
            generated_at=utcnow(),
            bookings_examined=len(bookings),
            mismatches=mismatches,
            mismatch_counts=count_by_kind(mismatches),
            revenue=summarise_revenue(bookings, payments, refunds),
        )

        logger.info(
            "Reconciliation report built",
            extra={
                "bookings_examined": report.bookings_examined,
                "mismatch_count": len(mismatches),
                "actor": actor.id
            }
        )
        return report

    async def sweep(self) -> dict[str, int]:
        """Count mismatches across the whole live ledger."""
        bookings, payments, refunds = await self.load_ledger()
        return count_by_kind(detect_mismatches(bookings, payments, refunds))


def _matches_refund_filter(booking_refunds: list[RefundRow], refund_filter: str) -> bool:
    if refund_filter == "has_refund":
        return bool(booking_refunds)
    if refund_filter == "no_refund":
        return not booking_refunds
    if refund_filter == "pending_refund":
        return any(r.status == "pending" for r in booking_refunds)
    if refund_filter == "processed_refund":
        return any(r.status == "processed" for r in booking_refunds)
    return True
