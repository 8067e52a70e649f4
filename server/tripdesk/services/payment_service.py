"""Payment verification workflow: proof uploads, staff review, manual entries."""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.database import commit_or_rollback
from ..core.exceptions import (
    AlreadySettled,
    InvalidTransition,
    MissingProof,
    NotFoundError,
    SeatsUnavailable,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..core.permissions import Actor, Permission, require_permission
from ..models.batch import Batch
from ..models.booking import Booking, BookingState, PaymentStage, ProofStatus
from ..models.payment import Payment, PaymentRecordStage
from ..models.trip import Trip
from .audit_service import AuditAction, AuditService
from .booking_service import BookingService
from .common import format_inr
from .inventory_service import InventoryService
from .lifecycle import BookingEvent, apply_transition
from .notification_service import (
    NotificationDispatcher,
    NotificationPayload,
    TemplateKind,
    build_payload,
    get_dispatcher,
)

logger = logging.getLogger(__name__)

_UPLOAD_EVENTS = {
    PaymentStage.ADVANCE: BookingEvent.ADVANCE_UPLOADED,
    PaymentStage.BALANCE: BookingEvent.BALANCE_UPLOADED,
}
_VERIFY_EVENTS = {
    PaymentStage.ADVANCE: BookingEvent.ADVANCE_VERIFIED,
    PaymentStage.BALANCE: BookingEvent.BALANCE_VERIFIED,
}
_REJECT_EVENTS = {
    PaymentStage.ADVANCE: BookingEvent.ADVANCE_REJECTED,
    PaymentStage.BALANCE: BookingEvent.BALANCE_REJECTED,
}

# States in which a stage is waiting on the traveller's proof
_AWAITING_PROOF = {
    PaymentStage.ADVANCE: (BookingState.INITIATED, BookingState.AWAITING_ADVANCE),
    PaymentStage.BALANCE: (BookingState.ADVANCE_VERIFIED, BookingState.BALANCE_PENDING),
}


def balance_due_date(batch: Batch) -> date:
    """Date by which the balance must be paid."""
    return batch.start_date - timedelta(days=settings.balance_due_days_before_departure)


def build_balance_reminder(booking: Booking, batch: Batch, trip_name: str) -> Optional[NotificationPayload]:
    """
    Reminder payload for an outstanding balance, or None when nothing is owed.

    Nothing is delivered here; the caller hands the payload to a dispatcher.
    """
    outstanding = booking.balance_due
    if outstanding <= 0:
        return None
    return build_payload(
        booking.phone,
        TemplateKind.PAYMENT_REMINDER,
        traveller_name=booking.full_name,
        trip_name=trip_name,
        booking_id=booking.id,
        amount_outstanding=outstanding,
        amount_display=format_inr(outstanding),
        due_date=balance_due_date(batch).isoformat(),
    )


class PaymentService:
    """Service for the two-stage manual payment verification workflow."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationDispatcher] = None):
        self.db = db
        self.notifier = notifier or get_dispatcher()
        self.bookings = BookingService(db, self.notifier)
        self.inventory = InventoryService(db)
        self.audit = AuditService(db)

    async def upload_proof(
        self,
        booking_id: str,
        stage: PaymentStage,
        asset_reference: str,
        actor: Actor,
        transaction_note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Attach a payment screenshot reference to a proof slot.

        Re-uploading after a rejection, or replacing a proof still under
        review, is allowed.

        Raises:
            NotFoundError: If booking not found or not the actor's
            ValidationError: If the asset reference is blank
            InvalidTransition: If the booking cannot take this proof now
        """
        stage = PaymentStage(stage)
        if not asset_reference or not asset_reference.strip():
            raise ValidationError(detail="An asset reference is required", errors={"asset_reference": "blank"})

        booking = await self.bookings.get_live_booking_or_raise(booking_id)
        if booking.user_id != actor.id and not actor.can(Permission.VERIFY_PAYMENTS):
            raise NotFoundError(resource_type="booking", resource_id=booking_id)

        now = now or utcnow()
        prefix = stage.value
        await apply_transition(
            self.db,
            booking,
            _UPLOAD_EVENTS[stage],
            {
                f"{prefix}_proof_ref": asset_reference.strip(),
                f"{prefix}_proof_status": ProofStatus.UPLOADED.value,
                f"{prefix}_proof_note": transaction_note,
                f"{prefix}_uploaded_at": now,
            },
        )
        await self.audit.record(
            actor.id,
            AuditAction.PROOF_UPLOADED,
            "booking",
            booking_id,
            {"stage": stage.value, "asset_reference": asset_reference.strip()},
        )
        await commit_or_rollback(self.db, "payment_proof_upload")

        logger.info(
            "Payment proof uploaded",
            extra={"booking_id": booking_id, "stage": stage.value, "state": booking.state}
        )
        self.notifier.dispatch(build_payload(
            booking.phone,
            TemplateKind.PAYMENT_UPLOADED,
            traveller_name=booking.full_name,
            booking_id=booking.id,
            stage=stage.value,
        ))
        return booking

    async def _trip_name(self, booking: Booking) -> str:
        trip = await self.bookings.trip_service.get_trip_by_id(booking.trip_id)
        return trip.name if trip else ""

    def _check_proof(self, booking: Booking, stage: PaymentStage, booking_id: str) -> None:
        if booking.lifecycle_state == BookingState.FULLY_PAID:
            raise AlreadySettled(booking_id=booking_id, event=_VERIFY_EVENTS[stage].value)
        if booking.lifecycle_state in _AWAITING_PROOF[stage]:
            if booking.proof_status(stage) != ProofStatus.UPLOADED or not booking.proof_ref(stage):
                logger.warning(
                    "Payment review failed - no uploaded proof",
                    extra={"booking_id": booking_id, "stage": stage.value, "proof_status": booking.proof_status(stage).value}
                )
                raise MissingProof(booking_id=booking_id, stage=stage.value)

    def _proof_guard(self, booking: Booking, stage: PaymentStage) -> list:
        """Conditions that pin the UPDATE to the exact proof this caller reviewed."""
        prefix = stage.value
        return [
            getattr(Booking, f"{prefix}_proof_status") == ProofStatus.UPLOADED.value,
            getattr(Booking, f"{prefix}_proof_ref") == booking.proof_ref(stage),
        ]

    async def verify(self, booking_id: str, stage: PaymentStage, actor: Actor, now: Optional[datetime] = None) -> Booking:
        """
        Approve an uploaded proof.

        Verifying the advance reserves the booking's seats in the same
        transaction; if the batch cannot seat the party nothing changes.
        Each verification records a Payment row and an audit entry.

        Raises:
            AuthorizationError: If the actor cannot verify payments
            MissingProof: If no proof is uploaded for the stage
            AlreadySettled: If the booking is already fully paid
            InvalidTransition: If the state does not allow this verification or the
                proof was rejected or replaced after it was read
            SeatsUnavailable: If advance verification cannot reserve the seats
        """
        require_permission(actor, Permission.VERIFY_PAYMENTS)
        stage = PaymentStage(stage)
        booking = await self.bookings.get_live_booking_or_raise(booking_id)
        self._check_proof(booking, stage, booking_id)

        now = now or utcnow()
        batch_id = booking.batch_id
        travellers = booking.traveller_count
        prefix = stage.value

        if stage == PaymentStage.ADVANCE:
            amount = booking.advance_amount
            changes = {
                "advance_proof_status": ProofStatus.VERIFIED.value,
                "advance_verified_at": now,
                "advance_paid": amount,
                "verified_by": actor.id,
                "rejection_reason": None,
            }
            guard = [Booking.seats_held == 0, *self._proof_guard(booking, stage)]
            if batch_id is not None:
                changes["seats_held"] = travellers
            await apply_transition(self.db, booking, BookingEvent.ADVANCE_VERIFIED, changes, guard)

            if batch_id is not None:
                try:
                    await self.inventory.reserve_seats(batch_id, travellers)
                except SeatsUnavailable:
                    await self.db.rollback()
                    metrics_collector.record_payment_review(stage.value, "seats_unavailable")
                    raise
        else:
            amount = booking.balance_due
            await apply_transition(
                self.db,
                booking,
                BookingEvent.BALANCE_VERIFIED,
                {
                    "balance_proof_status": ProofStatus.VERIFIED.value,
                    "balance_verified_at": now,
                    "verified_by": actor.id,
                    "rejection_reason": None,
                },
                self._proof_guard(booking, stage),
            )

        payment = Payment(
            booking_id=booking.id,
            amount=amount,
            method=settings.proof_payment_method,
            stage=stage.value,
            status="verified",
            transaction_id=getattr(booking, f"{prefix}_proof_note"),
            recorded_by=actor.id,
        )
        self.db.add(payment)
        await self.audit.record(
            actor.id,
            AuditAction.PAYMENT_VERIFIED,
            "booking",
            booking_id,
            {
                "stage": stage.value,
                "amount": amount,
                "state": booking.state,
                "seats_reserved": travellers if stage == PaymentStage.ADVANCE and batch_id else 0,
            },
        )
        await commit_or_rollback(self.db, f"{stage.value}_verification")

        metrics_collector.record_payment_review(stage.value, "verified")
        logger.info(
            "Payment verified",
            extra={
                "booking_id": booking_id,
                "stage": stage.value,
                "amount": amount,
                "state": booking.state,
                "actor": actor.id
            }
        )

        trip_name = await self._trip_name(booking)
        if stage == PaymentStage.ADVANCE:
            self.notifier.dispatch(build_payload(
                booking.phone,
                TemplateKind.ADVANCE_VERIFIED,
                traveller_name=booking.full_name,
                trip_name=trip_name,
                booking_id=booking.id,
                advance_paid=format_inr(booking.advance_paid),
                remaining_balance=format_inr(booking.balance_due),
            ))
        else:
            self.notifier.dispatch(build_payload(
                booking.phone,
                TemplateKind.FULLY_PAID,
                traveller_name=booking.full_name,
                trip_name=trip_name,
                booking_id=booking.id,
                total_amount=format_inr(booking.total_amount),
            ))
        return booking

    async def reject(self, booking_id: str, stage: PaymentStage, reason: str, actor: Actor) -> Booking:
        """
        Reject an uploaded proof so the traveller can upload a new one.

        Seats already held stay held.

        Raises:
            AuthorizationError: If the actor cannot verify payments
            ValidationError: If the reason is blank
            MissingProof: If no proof is uploaded for the stage
            InvalidTransition: If the state does not allow this rejection or the
                proof was reviewed or replaced after it was read
        """
        require_permission(actor, Permission.VERIFY_PAYMENTS)
        if not reason or not reason.strip():
            raise ValidationError(detail="A reason is required when rejecting a payment proof", errors={"reason": "blank"})
        stage = PaymentStage(stage)
        reason = reason.strip()

        booking = await self.bookings.get_live_booking_or_raise(booking_id)
        if booking.lifecycle_state in _AWAITING_PROOF[stage] and booking.proof_status(stage) != ProofStatus.UPLOADED:
            raise MissingProof(booking_id=booking_id, stage=stage.value)

        await apply_transition(
            self.db,
            booking,
            _REJECT_EVENTS[stage],
            {
                f"{stage.value}_proof_status": ProofStatus.REJECTED.value,
                "rejection_reason": reason,
            },
            self._proof_guard(booking, stage),
        )
        await self.audit.record(
            actor.id,
            AuditAction.PAYMENT_REJECTED,
            "booking",
            booking_id,
            {"stage": stage.value, "reason": reason, "state": booking.state},
        )
        await commit_or_rollback(self.db, f"{stage.value}_rejection")

        metrics_collector.record_payment_review(stage.value, "rejected")
        logger.info(
            "Payment proof rejected",
            extra={"booking_id": booking_id, "stage": stage.value, "reason": reason, "actor": actor.id}
        )
        self.notifier.dispatch(build_payload(
            booking.phone,
            TemplateKind.PAYMENT_REJECTED,
            traveller_name=booking.full_name,
            booking_id=booking.id,
            stage=stage.value,
            reason=reason,
        ))
        return booking

    async def record_manual_payment(
        self,
        booking_id: str,
        amount: int,
        method: str,
        actor: Actor,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Payment:
        """
        Record money received outside the proof flow, e.g. cash at pickup.

        Only a Payment row and an audit entry are written; the booking state
        is left to the regular verification events.

        Raises:
            AuthorizationError: If the actor cannot verify payments
            ValidationError: If amount is not positive
            InvalidTransition: If the booking has expired
        """
        require_permission(actor, Permission.VERIFY_PAYMENTS)
        if amount <= 0:
            raise ValidationError(detail="Payment amount must be positive", errors={"amount": amount})

        booking = await self.bookings.get_live_booking_or_raise(booking_id)
        if booking.lifecycle_state == BookingState.EXPIRED:
            raise InvalidTransition(
                booking_id=booking_id,
                current_state=booking.state,
                event="manual_payment",
                detail=f"Booking {booking_id} has expired. Create a new booking before recording payments.",
            )

        payment = Payment(
            booking_id=booking.id,
            amount=amount,
            method=method,
            stage=PaymentRecordStage.MANUAL.value,
            status="verified",
            transaction_id=transaction_id,
            notes=notes,
            recorded_by=actor.id,
        )
        self.db.add(payment)
        await self.db.flush()

        await self.audit.record(
            actor.id,
            AuditAction.MANUAL_PAYMENT_RECORDED,
            "booking",
            booking_id,
            {"payment_id": str(payment.id), "amount": amount, "method": method, "transaction_id": transaction_id},
        )
        await commit_or_rollback(self.db, "manual_payment")
        await self.db.refresh(payment)

        logger.info(
            "Manual payment recorded",
            extra={"booking_id": booking_id, "payment_id": str(payment.id), "amount": amount, "actor": actor.id}
        )
        return payment

    async def collect_balance_reminders(self, as_of: date) -> list[tuple[str, NotificationPayload]]:
        """
        Reminder payloads for bookings whose batch departs on a reminder day.

        Returns (booking_id, payload) pairs; nothing is sent here.
        """
        target_dates = [as_of + timedelta(days=days) for days in settings.balance_reminder_days]
        stmt = (
            select(Booking, Batch, Trip)
            .join(Batch, Booking.batch_id == Batch.id)
            .join(Trip, Booking.trip_id == Trip.id)
            .where(
                Batch.start_date.in_(target_dates),
                Booking.state.in_([BookingState.ADVANCE_VERIFIED.value, BookingState.BALANCE_PENDING.value]),
                Booking.is_deleted.is_(False),
            )
            .order_by(Batch.start_date, Booking.created_at)
        )
        result = await self.db.execute(stmt)

        reminders = []
        for booking, batch, trip in result.all():
            payload = build_balance_reminder(booking, batch, trip.name)
            if payload is not None:
                reminders.append((str(booking.id), payload))
        return reminders
