"""Booking service for creation, lookup, expiry and deletion."""

import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import local_today, utcnow
from ..core.config import settings
from ..core.database import commit_or_rollback
from ..core.exceptions import (
    InvalidTransition,
    NotFoundError,
    SeatsUnavailable,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..core.permissions import Actor, Permission, require_permission
from ..models.batch import Batch, BatchStatus
from ..models.booking import Booking, BookingState
from ..models.payment import Payment, Refund
from ..models.trip import Trip
from ..schemas.booking import CreateBookingRequest
from .audit_service import AuditAction, AuditService
from .common import format_inr, parse_uuid
from .inventory_service import InventoryService, available, quote
from .lifecycle import BookingEvent, apply_transition
from .notification_service import NotificationDispatcher, TemplateKind, build_payload, get_dispatcher
from .trip_service import TripService

logger = logging.getLogger(__name__)


def advance_due(trip: Trip, traveller_count: int, total_amount: int) -> int:
    """Advance owed up front: per-traveller advance times travellers, capped at the total."""
    per_traveller = trip.advance_per_traveller
    if per_traveller is None:
        per_traveller = settings.default_advance_per_traveller
    return min(per_traveller * traveller_count, total_amount)


async def release_held_seats(db: AsyncSession, booking: Booking, changes: Optional[dict] = None) -> int:
    """
    Return a booking's held seats to its batch exactly once.

    ``seats_held`` is cleared with a compare-and-swap before the batch is
    touched, so a second caller finds nothing to release. Returns the number
    of seats released. The caller owns the transaction.
    """
    held = booking.seats_held
    values = dict(changes or {})
    values["seats_held"] = 0

    stmt = (
        update(Booking)
        .where(Booking.id == booking.id, Booking.seats_held == held)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        raise InvalidTransition(
            booking_id=str(booking.id),
            current_state=booking.state,
            event="release_seats",
            detail=f"Booking {booking.id} changed while its seats were being released. Reload and try again.",
        )

    if held > 0 and booking.batch_id is not None:
        await InventoryService(db).release_seats(booking.batch_id, held)

    await db.refresh(booking)
    return held


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationDispatcher] = None):
        self.db = db
        self.trip_service = TripService(db)
        self.inventory = InventoryService(db)
        self.audit = AuditService(db)
        self.notifier = notifier or get_dispatcher()

    async def create_booking(self, request: CreateBookingRequest, actor: Actor) -> Booking:
        """
        Create a booking in the initiated state.

        No seats are held yet; they are reserved when the advance payment is
        verified. When ``total_amount`` is omitted the dynamic price quote for
        the batch is used.

        Raises:
            NotFoundError: If trip or batch not found
            ValidationError: If the trip is closed or the traveller count is out of range
            SeatsUnavailable: If the batch already cannot seat the party
        """
        if request.traveller_count > settings.max_travellers_per_booking:
            raise ValidationError(
                detail=f"A booking may include at most {settings.max_travellers_per_booking} travellers",
                errors={"traveller_count": request.traveller_count},
            )

        trip = await self.trip_service.get_trip_by_id_or_raise(parse_uuid(request.trip_id, "trip_id"))
        if not trip.is_bookable:
            logger.warning(
                "Booking creation failed - trip not bookable",
                extra={"trip_id": request.trip_id, "is_active": trip.is_active, "booking_live": trip.booking_live}
            )
            raise ValidationError(detail=f"Trip '{trip.name}' is not accepting bookings right now")

        batch: Optional[Batch] = None
        if request.batch_id:
            batch = await self.inventory.get_batch_by_id_or_raise(parse_uuid(request.batch_id, "batch_id"))
            if batch.trip_id != trip.id:
                raise ValidationError(
                    detail=f"Batch {request.batch_id} does not belong to trip {request.trip_id}",
                    errors={"batch_id": request.batch_id},
                )
            if batch.status != BatchStatus.ACTIVE.value or batch.start_date < local_today():
                raise ValidationError(
                    detail=f"Batch '{batch.name}' is not open for booking",
                    errors={"batch_id": request.batch_id},
                )
            remaining = available(batch)
            if remaining < request.traveller_count:
                metrics_collector.record_seats_unavailable(str(batch.id))
                raise SeatsUnavailable(
                    batch_id=str(batch.id),
                    requested_seats=request.traveller_count,
                    available_seats=remaining,
                )

        total_amount = request.total_amount
        if total_amount is None:
            if batch is not None:
                unit_price = quote(trip, batch, request.pickup_location).effective_price
            else:
                unit_price = trip.price_for_origin(request.pickup_location)
            total_amount = unit_price * request.traveller_count

        booking = Booking(
            trip_id=trip.id,
            batch_id=batch.id if batch else None,
            user_id=actor.id,
            full_name=request.contact.full_name.strip(),
            email=request.contact.email.strip(),
            phone=request.contact.phone.strip(),
            pickup_location=request.pickup_location,
            traveller_count=request.traveller_count,
            total_amount=total_amount,
            advance_amount=advance_due(trip, request.traveller_count, total_amount),
            advance_paid=0,
            seats_held=0,
            state=BookingState.INITIATED.value,
        )
        self.db.add(booking)
        await self.db.flush()

        await self.audit.record(
            actor.id,
            AuditAction.BOOKING_CREATED,
            "booking",
            str(booking.id),
            {
                "trip_id": str(trip.id),
                "batch_id": str(batch.id) if batch else None,
                "traveller_count": booking.traveller_count,
                "total_amount": booking.total_amount,
            },
        )
        await commit_or_rollback(self.db, "booking_create")
        await self.db.refresh(booking)

        metrics_collector.record_booking_created(str(trip.id))
        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking.id),
                "trip_id": str(trip.id),
                "batch_id": str(booking.batch_id) if booking.batch_id else None,
                "traveller_count": booking.traveller_count,
                "total_amount": booking.total_amount,
                "advance_amount": booking.advance_amount
            }
        )

        self.notifier.dispatch(build_payload(
            booking.phone,
            TemplateKind.BOOKING_CREATED,
            traveller_name=booking.full_name,
            trip_name=trip.name,
            booking_id=booking.id,
            amount_to_pay=format_inr(booking.advance_amount),
        ))
        return booking

    async def get_booking(self, booking_id: str, actor: Actor) -> Booking:
        """
        Get a booking visible to the actor.

        Travellers see only their own bookings that are not deleted; staff
        with the view permission see every booking, deleted ones included.

        Raises:
            NotFoundError: If booking not found or not visible
        """
        booking = await self.get_booking_by_id_or_raise(parse_uuid(booking_id, "booking_id"))
        if actor.can(Permission.VIEW_BOOKINGS):
            return booking
        if booking.user_id != actor.id or booking.is_deleted:
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        return booking

    async def list_my_bookings(self, actor: Actor, limit: int = 50) -> list[Booking]:
        """The actor's own bookings, newest first, excluding deleted ones."""
        stmt = (
            select(Booking)
            .where(Booking.user_id == actor.id, Booking.is_deleted.is_(False))
            .order_by(Booking.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def expire_stale_bookings(self, now: Optional[datetime] = None, limit: int = 100) -> int:
        """
        Expire initiated bookings that never received a payment proof.

        No seats are held in the initiated state, so nothing is released.

        Returns:
            Number of bookings expired
        """
        now = now or utcnow()
        cutoff = now - timedelta(minutes=settings.initiated_booking_ttl_minutes)

        stmt = (
            select(Booking)
            .where(
                Booking.state == BookingState.INITIATED.value,
                Booking.created_at <= cutoff,
                Booking.is_deleted.is_(False),
            )
            .order_by(Booking.created_at)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        stale = list(result.scalars())

        system = Actor.system()
        expired_count = 0
        for booking in stale:
            try:
                await apply_transition(self.db, booking, BookingEvent.EXPIRED)
            except InvalidTransition:
                # A proof upload won the race; leave the booking alone
                continue
            await self.audit.record(
                system.id,
                AuditAction.BOOKING_EXPIRED,
                "booking",
                str(booking.id),
                {"created_at": booking.created_at.isoformat(), "ttl_minutes": settings.initiated_booking_ttl_minutes},
            )
            expired_count += 1

        if expired_count > 0:
            await commit_or_rollback(self.db, "booking_expiry")
            metrics_collector.record_bookings_expired(expired_count)
            logger.info(
                "Booking expiration batch completed",
                extra={
                    "expired_count": expired_count,
                    "batch_size": limit
                }
            )
        return expired_count

    async def soft_delete(self, booking_id: str, actor: Actor) -> Booking:
        """
        Hide a booking from traveller-facing views.

        A seat-holding booking goes through the release path first so the
        hidden row no longer counts toward occupancy.

        Raises:
            AuthorizationError: If the actor cannot delete bookings
            NotFoundError: If booking not found
            ConflictError: If the booking is already deleted
        """
        require_permission(actor, Permission.DELETE_BOOKING)
        booking = await self.get_booking_by_id_or_raise(parse_uuid(booking_id, "booking_id"))
        if booking.is_deleted:
            raise InvalidTransition(
                booking_id=booking_id,
                current_state=booking.state,
                event="soft_delete",
                detail=f"Booking {booking_id} is already deleted.",
            )

        now = utcnow()
        released = await release_held_seats(
            self.db,
            booking,
            {"is_deleted": True, "deleted_at": now, "deleted_by": actor.id},
        )
        await self.audit.record(
            actor.id,
            AuditAction.BOOKING_SOFT_DELETED,
            "booking",
            booking_id,
            {"state": booking.state, "seats_released": released},
        )
        await commit_or_rollback(self.db, "booking_soft_delete")

        logger.info(
            "Booking soft deleted",
            extra={"booking_id": booking_id, "seats_released": released, "actor": actor.id}
        )
        return booking

    async def hard_delete(self, booking_id: str, actor: Actor) -> int:
        """
        Permanently remove a booking with its payments and refunds.

        Restricted to the highest privilege tier. Held seats are released
        before the rows go. The audit entry survives the booking.

        Returns:
            Number of seats released
        """
        require_permission(actor, Permission.FORCE_DELETE_BOOKING)
        booking_uuid = parse_uuid(booking_id, "booking_id")
        booking = await self.get_booking_by_id_or_raise(booking_uuid)
        state = booking.state
        total_amount = booking.total_amount

        released = await release_held_seats(self.db, booking)

        payments_removed = (await self.db.execute(
            delete(Payment).where(Payment.booking_id == booking_uuid)
        )).rowcount
        refunds_removed = (await self.db.execute(
            delete(Refund).where(Refund.booking_id == booking_uuid)
        )).rowcount
        await self.db.execute(
            delete(Booking)
            .where(Booking.id == booking_uuid)
            .execution_options(synchronize_session=False)
        )
        self.db.expunge(booking)

        await self.audit.record(
            actor.id,
            AuditAction.BOOKING_HARD_DELETED,
            "booking",
            booking_id,
            {
                "state": state,
                "total_amount": total_amount,
                "seats_released": released,
                "payments_removed": payments_removed,
                "refunds_removed": refunds_removed,
            },
        )
        await commit_or_rollback(self.db, "booking_hard_delete")

        logger.warning(
            "Booking permanently deleted",
            extra={"booking_id": booking_id, "seats_released": released, "actor": actor.id}
        )
        return released

    async def get_booking_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Get booking by ID."""
        stmt = select(Booking).where(Booking.id == booking_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_by_id_or_raise(self, booking_id: UUID) -> Booking:
        """Get booking by ID or raise NotFoundError."""
        booking = await self.get_booking_by_id(booking_id)
        if not booking:
            logger.warning(
                "Booking not found",
                extra={"booking_id": str(booking_id)}
            )
            raise NotFoundError(
                resource_type="booking",
                resource_id=str(booking_id)
            )
        return booking

    async def get_live_booking_or_raise(self, booking_id: str) -> Booking:
        """Get a booking that can still change state; deleted bookings are frozen."""
        booking = await self.get_booking_by_id_or_raise(parse_uuid(booking_id, "booking_id"))
        if booking.is_deleted:
            raise NotFoundError(
                resource_type="booking",
                resource_id=booking_id,
                detail=f"Booking {booking_id} has been deleted and can no longer be changed",
            )
        return booking
