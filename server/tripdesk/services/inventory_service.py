"""Batch inventory service: seat reservation, release and staff overrides."""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import local_today
from ..core.database import commit_or_rollback
from ..core.exceptions import ConflictError, NotFoundError, SeatsUnavailable, ValidationError
from ..core.observability import metrics_collector
from ..core.permissions import Actor, Permission, require_permission
from ..models.batch import Batch, BatchStatus
from ..models.trip import Trip
from ..schemas.batch import CreateBatchRequest
from .audit_service import AuditAction, AuditService
from .common import parse_uuid
from .pricing import DynamicPrice, PricingPolicy, calculate_dynamic_price
from .trip_service import TripService

logger = logging.getLogger(__name__)


def available(batch: Batch) -> int:
    """
    Remaining seats of a batch.

    The ``available_seats`` cache is trusted only when it agrees with the
    counters; otherwise the value is derived from ``batch_size - seats_booked``.
    """
    derived = batch.remaining_seats
    if batch.available_seats is None or batch.available_seats != derived:
        return derived
    return batch.available_seats


def base_price_for(trip: Trip, batch: Batch, pickup_location: Optional[str] = None) -> int:
    """Per-traveller base price: batch override, then origin price, then trip default."""
    if batch.price_override is not None:
        return batch.price_override
    return trip.price_for_origin(pickup_location)


def quote(
    trip: Trip,
    batch: Batch,
    pickup_location: Optional[str] = None,
    as_of: Optional[date] = None,
    policy: Optional[PricingPolicy] = None,
) -> DynamicPrice:
    """Dynamic per-traveller price quote for a batch."""
    return calculate_dynamic_price(
        base_price=base_price_for(trip, batch, pickup_location),
        batch_size=batch.batch_size,
        seats_available=available(batch),
        departure_date=batch.start_date,
        as_of=as_of or local_today(),
        policy=policy,
    )


class InventoryService:
    """Service that owns the seat counters of every batch."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.trip_service = TripService(db)
        self.audit = AuditService(db)

    async def reserve_seats(self, batch_id: UUID, count: int) -> None:
        """
        Reserve seats with a single conditional UPDATE.

        The statement only matches an active batch that still has ``count``
        seats free, and recomputes ``available_seats`` in the same write, so
        concurrent reservations can never oversell. The caller owns the
        transaction.

        Raises:
            ValidationError: If count is not positive
            NotFoundError: If the batch does not exist
            SeatsUnavailable: If the batch cannot cover the request
        """
        if count <= 0:
            raise ValidationError(detail="Seat count must be positive", errors={"count": count})

        stmt = (
            update(Batch)
            .where(
                Batch.id == batch_id,
                Batch.status == BatchStatus.ACTIVE.value,
                Batch.batch_size - Batch.seats_booked >= count,
            )
            .values(
                seats_booked=Batch.seats_booked + count,
                available_seats=Batch.batch_size - Batch.seats_booked - count,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount == 1:
            logger.info(
                "Seats reserved",
                extra={"batch_id": str(batch_id), "seats": count}
            )
            return

        batch = await self.get_batch_by_id_or_raise(batch_id)
        await self.db.refresh(batch)
        remaining = available(batch) if batch.status == BatchStatus.ACTIVE.value else 0

        logger.warning(
            "Seat reservation failed - insufficient capacity",
            extra={
                "batch_id": str(batch_id),
                "requested_seats": count,
                "available_seats": remaining,
                "batch_status": batch.status
            }
        )
        metrics_collector.record_seats_unavailable(str(batch_id))
        raise SeatsUnavailable(
            batch_id=str(batch_id),
            requested_seats=count,
            available_seats=remaining,
        )

    async def release_seats(self, batch_id: UUID, count: int) -> None:
        """
        Return seats to a batch with a single UPDATE floored at zero.

        The caller owns the transaction.
        """
        if count <= 0:
            return

        released = case(
            (Batch.seats_booked >= count, Batch.seats_booked - count),
            else_=0,
        )
        stmt = (
            update(Batch)
            .where(Batch.id == batch_id)
            .values(
                seats_booked=released,
                available_seats=Batch.batch_size - released,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount != 1:
            raise NotFoundError(resource_type="batch", resource_id=str(batch_id))

        logger.info(
            "Seats released",
            extra={"batch_id": str(batch_id), "seats": count}
        )

    async def list_active_batches(
        self,
        trip_id: str,
        pickup_location: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> list[tuple[Batch, DynamicPrice]]:
        """
        Bookable batches of a trip, soonest first, each with its price quote.

        Raises:
            NotFoundError: If trip not found
        """
        trip = await self.trip_service.get_trip_by_id_or_raise(parse_uuid(trip_id, "trip_id"))
        as_of = as_of or local_today()

        stmt = (
            select(Batch)
            .where(
                Batch.trip_id == trip.id,
                Batch.status == BatchStatus.ACTIVE.value,
                Batch.start_date >= as_of,
            )
            .order_by(Batch.start_date)
        )
        result = await self.db.execute(stmt)
        batches = list(result.scalars())

        policy = PricingPolicy.from_settings()
        quoted = []
        for batch in batches:
            quoted.append((batch, quote(trip, batch, pickup_location, as_of, policy)))
            metrics_collector.set_batch_occupancy(str(batch.id), batch.batch_size, batch.seats_booked)
        return quoted

    async def create_batch(self, request: CreateBatchRequest, actor: Actor) -> Batch:
        """
        Schedule a new batch for a trip.

        Raises:
            AuthorizationError: If the actor cannot manage batches
            NotFoundError: If trip not found
        """
        require_permission(actor, Permission.MANAGE_BATCHES)
        trip = await self.trip_service.get_trip_by_id_or_raise(parse_uuid(request.trip_id, "trip_id"))

        batch_size = request.batch_size or trip.default_capacity
        batch = Batch(
            trip_id=trip.id,
            name=request.name,
            start_date=request.start_date,
            end_date=request.end_date,
            batch_size=batch_size,
            seats_booked=0,
            available_seats=batch_size,
            price_override=request.price_override,
            status=request.status.value,
        )
        self.db.add(batch)
        await self.db.flush()

        await self.audit.record(
            actor.id,
            AuditAction.BATCH_CREATED,
            "batch",
            str(batch.id),
            {
                "trip_id": str(trip.id),
                "start_date": batch.start_date.isoformat(),
                "batch_size": batch_size,
                "price_override": request.price_override,
            },
        )
        await commit_or_rollback(self.db, "batch_create")
        await self.db.refresh(batch)

        logger.info(
            "Batch created successfully",
            extra={
                "batch_id": str(batch.id),
                "trip_id": str(trip.id),
                "start_date": batch.start_date.isoformat(),
                "batch_size": batch_size
            }
        )
        return batch

    async def adjust_capacity(self, batch_id: str, delta: int, reason: str, actor: Actor) -> Batch:
        """
        Grow or shrink a batch.

        Shrinking below the seats already booked is refused. The check is part
        of the UPDATE itself so a reservation racing with the shrink cannot
        leave the batch oversold.

        Raises:
            AuthorizationError: If the actor cannot manage seats
            ValidationError: If the reason is blank or delta is zero
            NotFoundError: If batch not found
            ConflictError: If the new size would be below seats booked
        """
        require_permission(actor, Permission.MANAGE_SEATS)
        if not reason or not reason.strip():
            raise ValidationError(detail="A reason is required for capacity changes")
        if delta == 0:
            raise ValidationError(detail="Capacity delta must not be zero", errors={"delta": delta})

        batch_uuid = parse_uuid(batch_id, "batch_id")
        batch = await self.get_batch_by_id_or_raise(batch_uuid)
        size_before = batch.batch_size
        booked_before = batch.seats_booked

        stmt = (
            update(Batch)
            .where(Batch.id == batch_uuid, Batch.batch_size + delta >= Batch.seats_booked)
            .values(
                batch_size=Batch.batch_size + delta,
                available_seats=Batch.batch_size + delta - Batch.seats_booked,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount != 1:
            await self.db.rollback()
            logger.warning(
                "Capacity adjustment failed - would drop below seats booked",
                extra={
                    "batch_id": batch_id,
                    "delta": delta,
                    "batch_size": size_before,
                    "seats_booked": booked_before,
                    "actor": actor.id
                }
            )
            raise ConflictError(
                detail=(
                    f"Cannot change batch {batch_id} by {delta} seats: {booked_before} seats are already "
                    f"booked out of {size_before}."
                ),
                conflicting_resource={
                    "batch_id": batch_id,
                    "requested_delta": delta,
                    "batch_size": size_before,
                    "seats_booked": booked_before,
                },
            )

        await self.db.refresh(batch)
        await self.audit.record(
            actor.id,
            AuditAction.BATCH_CAPACITY_ADJUSTED,
            "batch",
            batch_id,
            {
                "delta": delta,
                "reason": reason.strip(),
                "batch_size_before": size_before,
                "batch_size_after": batch.batch_size,
            },
        )
        await commit_or_rollback(self.db, "batch_capacity_adjust")

        logger.info(
            "Batch capacity adjusted",
            extra={
                "batch_id": batch_id,
                "delta": delta,
                "capacity_before": f"{booked_before}/{size_before}",
                "capacity_after": f"{batch.seats_booked}/{batch.batch_size}",
                "actor": actor.id
            }
        )
        return batch

    async def set_status(self, batch_id: str, status: BatchStatus, reason: str, actor: Actor) -> Batch:
        """
        Flip a batch's status, e.g. close it to new reservations.

        Raises:
            AuthorizationError: If the actor cannot manage batches
            ValidationError: If the reason is blank
            NotFoundError: If batch not found
        """
        require_permission(actor, Permission.MANAGE_BATCHES)
        if not reason or not reason.strip():
            raise ValidationError(detail="A reason is required for status changes")

        batch = await self.get_batch_by_id_or_raise(parse_uuid(batch_id, "batch_id"))
        previous = batch.status
        batch.status = BatchStatus(status).value

        await self.audit.record(
            actor.id,
            AuditAction.BATCH_STATUS_CHANGED,
            "batch",
            batch_id,
            {"from": previous, "to": batch.status, "reason": reason.strip()},
        )
        await commit_or_rollback(self.db, "batch_status_change")
        await self.db.refresh(batch)

        logger.info(
            "Batch status changed",
            extra={"batch_id": batch_id, "from": previous, "to": batch.status, "actor": actor.id}
        )
        return batch

    async def get_batch_by_id(self, batch_id: UUID) -> Optional[Batch]:
        """Get batch by ID."""
        stmt = select(Batch).where(Batch.id == batch_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_batch_by_id_or_raise(self, batch_id: UUID) -> Batch:
        """Get batch by ID or raise NotFoundError."""
        batch = await self.get_batch_by_id(batch_id)
        if not batch:
            logger.warning(
                "Batch not found",
                extra={"batch_id": str(batch_id)}
            )
            raise NotFoundError(
                resource_type="batch",
                resource_id=str(batch_id)
            )
        return batch
