"""Cancellation and refund handling."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import departure_at, utcnow
from ..core.config import settings
from ..core.database import commit_or_rollback
from ..core.exceptions import (
    AuthorizationError,
    ElevatedConfirmationRequired,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..core.permissions import Actor, Permission, require_permission
from ..models.booking import Booking, BookingState
from ..models.payment import Payment, Refund, RefundStatus
from .audit_service import AuditAction, AuditService
from .booking_service import BookingService, release_held_seats
from .common import format_inr, parse_uuid
from .inventory_service import InventoryService
from .lifecycle import BookingEvent, apply_transition, next_state
from .notification_service import NotificationDispatcher, TemplateKind, build_payload, get_dispatcher

logger = logging.getLogger(__name__)


class CancellationService:
    """Service that cancels bookings and settles the refunds they create."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationDispatcher] = None):
        self.db = db
        self.notifier = notifier or get_dispatcher()
        self.bookings = BookingService(db, self.notifier)
        self.inventory = InventoryService(db)
        self.audit = AuditService(db)

    async def amount_paid(self, booking: Booking) -> int:
        """Money actually received: the larger of recorded payments and the verified advance."""
        result = await self.db.execute(select(Payment.amount).where(Payment.booking_id == booking.id))
        recorded = sum(result.scalars())
        return max(recorded, booking.advance_paid)

    async def hours_to_departure(self, booking: Booking, now: datetime) -> Optional[float]:
        if booking.batch_id is None:
            return None
        batch = await self.inventory.get_batch_by_id(booking.batch_id)
        if batch is None:
            return None
        return (departure_at(batch.start_date) - now).total_seconds() / 3600

    async def cancel(
        self,
        booking_id: str,
        reason: str,
        refund_amount: int,
        actor: Actor,
        elevated_confirmation: bool = False,
        now: Optional[datetime] = None,
    ) -> tuple[Booking, Refund]:
        """
        Cancel a booking, release its seats and record the refund owed.

        State change, seat release, the pending Refund row and the audit
        entry are committed together or not at all. Cancelling inside the
        late window before departure needs ``elevated_confirmation``, which
        only staff may give.

        Raises:
            ValidationError: If the reason is blank or the refund is out of range
            NotFoundError: If booking not found or not the actor's
            AuthorizationError: If a traveller attempts an elevated cancellation
            ElevatedConfirmationRequired: If departure is inside the late window
            InvalidTransition: If the booking can no longer be cancelled
        """
        if not reason or not reason.strip():
            raise ValidationError(detail="A cancellation reason is required", errors={"reason": "blank"})
        if refund_amount is None or refund_amount < 0:
            raise ValidationError(detail="Refund amount must not be negative", errors={"refund_amount": refund_amount})
        reason = reason.strip()

        booking = await self.bookings.get_live_booking_or_raise(booking_id)
        is_owner = booking.user_id is not None and booking.user_id == actor.id
        if not is_owner and not actor.can(Permission.CANCEL_BOOKING):
            raise NotFoundError(resource_type="booking", resource_id=booking_id)

        paid = await self.amount_paid(booking)
        if refund_amount > paid:
            raise ValidationError(
                detail=f"Refund of {format_inr(refund_amount)} exceeds the {format_inr(paid)} paid on this booking",
                errors={"refund_amount": refund_amount, "amount_paid": paid},
            )

        now = now or utcnow()
        hours_left = await self.hours_to_departure(booking, now)
        window = settings.late_cancellation_window_hours
        if hours_left is not None and 0 < hours_left <= window:
            if not elevated_confirmation:
                logger.warning(
                    "Cancellation blocked - inside late window",
                    extra={"booking_id": booking_id, "hours_to_departure": round(hours_left, 2), "window_hours": window}
                )
                raise ElevatedConfirmationRequired(booking_id=booking_id, hours_to_departure=hours_left, window_hours=window)
            if not actor.can(Permission.CANCEL_BOOKING):
                raise AuthorizationError(
                    detail="Only staff can confirm a cancellation this close to departure",
                    required_permissions=[Permission.CANCEL_BOOKING.value],
                )

        previous_state = booking.state
        held = booking.seats_held
        batch_id = booking.batch_id

        await apply_transition(
            self.db,
            booking,
            BookingEvent.CANCELLED,
            {"cancellation_reason": reason, "cancelled_at": now},
            [Booking.seats_held == held],
        )
        released = await release_held_seats(self.db, booking)

        refund = Refund(
            booking_id=booking.id,
            amount=refund_amount,
            status=RefundStatus.PENDING.value,
            reason=reason,
        )
        self.db.add(refund)
        await self.db.flush()

        await self.audit.record(
            actor.id,
            AuditAction.BOOKING_CANCELLED,
            "booking",
            booking_id,
            {
                "reason": reason,
                "previous_state": previous_state,
                "refund_id": str(refund.id),
                "refund_amount": refund_amount,
                "seats_released": released,
                "elevated_confirmation": elevated_confirmation,
                "hours_to_departure": round(hours_left, 2) if hours_left is not None else None,
            },
        )
        await commit_or_rollback(self.db, "booking_cancel")
        await self.db.refresh(refund)

        metrics_collector.record_booking_cancelled()
        logger.info(
            "Booking cancelled successfully",
            extra={
                "booking_id": booking_id,
                "batch_id": str(batch_id) if batch_id else None,
                "seats_released": released,
                "refund_id": str(refund.id),
                "refund_amount": refund_amount,
                "actor": actor.id
            }
        )
        self.notifier.dispatch(build_payload(
            booking.phone,
            TemplateKind.BOOKING_CANCELLED,
            traveller_name=booking.full_name,
            booking_id=booking.id,
            reason=reason,
            refund_amount=format_inr(refund_amount),
        ))
        return booking, refund

    async def process_refund(self, refund_id: str, actor: Actor, now: Optional[datetime] = None) -> tuple[Refund, Booking]:
        """
        Mark a pending refund as paid out and the booking as refunded.

        Raises:
            AuthorizationError: If the actor cannot process refunds
            NotFoundError: If refund not found
            InvalidTransition: If the refund is already processed or the booking is not cancelled
        """
        require_permission(actor, Permission.PROCESS_REFUND)
        refund_uuid = parse_uuid(refund_id, "refund_id")
        refund = await self.get_refund_by_id_or_raise(refund_uuid)
        booking = await self.bookings.get_booking_by_id_or_raise(refund.booking_id)
        booking_id = str(booking.id)

        if booking.lifecycle_state != BookingState.REFUNDED:
            next_state(booking_id, booking.lifecycle_state, BookingEvent.REFUND_PROCESSED)

        now = now or utcnow()
        stmt = (
            update(Refund)
            .where(Refund.id == refund_uuid, Refund.status == RefundStatus.PENDING.value)
            .values(status=RefundStatus.PROCESSED.value, processed_at=now, processed_by=actor.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            raise InvalidTransition(
                booking_id=booking_id,
                current_state=booking.state,
                event=BookingEvent.REFUND_PROCESSED.value,
                detail=f"Refund {refund_id} has already been processed.",
            )

        if booking.lifecycle_state != BookingState.REFUNDED:
            await apply_transition(self.db, booking, BookingEvent.REFUND_PROCESSED)

        await self.audit.record(
            actor.id,
            AuditAction.REFUND_PROCESSED,
            "refund",
            refund_id,
            {"booking_id": booking_id, "amount": refund.amount},
        )
        await commit_or_rollback(self.db, "refund_process")
        await self.db.refresh(refund)

        metrics_collector.record_refund_processed()
        logger.info(
            "Refund processed",
            extra={"refund_id": refund_id, "booking_id": booking_id, "amount": refund.amount, "actor": actor.id}
        )
        self.notifier.dispatch(build_payload(
            booking.phone,
            TemplateKind.REFUND_PROCESSED,
            traveller_name=booking.full_name,
            booking_id=booking.id,
            refund_amount=format_inr(refund.amount),
        ))
        return refund, booking

    async def get_refund_by_id_or_raise(self, refund_id) -> Refund:
        """Get refund by ID or raise NotFoundError."""
        result = await self.db.execute(select(Refund).where(Refund.id == refund_id))
        refund = result.scalar_one_or_none()
        if not refund:
            logger.warning("Refund not found", extra={"refund_id": str(refund_id)})
            raise NotFoundError(resource_type="refund", resource_id=str(refund_id))
        return refund
