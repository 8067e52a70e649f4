"""Trip service for catalogue operations."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import commit_or_rollback
from ..core.exceptions import ConflictError, NotFoundError
from ..core.permissions import Actor, Permission, require_permission
from ..models.trip import Trip
from ..schemas.trip import CreateTripRequest
from .audit_service import AuditAction, AuditService

logger = logging.getLogger(__name__)


class TripService:
    """Service for trip-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def create_trip(self, request: CreateTripRequest, actor: Actor) -> Trip:
        """
        Create a new trip.

        Raises:
            AuthorizationError: If the actor cannot manage trips
            ConflictError: If a trip with the same slug already exists
        """
        require_permission(actor, Permission.MANAGE_TRIPS)

        existing_trip = await self.get_trip_by_slug(request.slug)
        if existing_trip:
            logger.warning(
                "Trip creation failed - slug already exists",
                extra={
                    "slug": request.slug,
                    "existing_trip_id": str(existing_trip.id)
                }
            )
            raise ConflictError(
                detail=f"Trip with slug '{request.slug}' already exists",
                conflicting_resource={
                    "id": str(existing_trip.id),
                    "slug": existing_trip.slug,
                    "name": existing_trip.name
                }
            )

        trip = Trip(
            name=request.name,
            slug=request.slug,
            summary=request.summary,
            default_price=request.default_price,
            origin_prices=request.origin_prices,
            advance_per_traveller=request.advance_per_traveller,
            default_capacity=request.default_capacity,
            is_active=request.is_active,
            booking_live=request.booking_live,
        )
        self.db.add(trip)
        await self.db.flush()

        await self.audit.record(
            actor.id,
            AuditAction.TRIP_CREATED,
            "trip",
            str(trip.id),
            {"slug": trip.slug, "default_price": trip.default_price},
        )
        await commit_or_rollback(self.db, "trip_create")
        await self.db.refresh(trip)

        logger.info(
            "Trip created successfully",
            extra={
                "trip_id": str(trip.id),
                "slug": trip.slug,
                "name": trip.name
            }
        )
        return trip

    async def get_trip_by_id(self, trip_id: UUID) -> Optional[Trip]:
        """Get trip by ID."""
        stmt = select(Trip).where(Trip.id == trip_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_trip_by_slug(self, slug: str) -> Optional[Trip]:
        """Get trip by slug."""
        stmt = select(Trip).where(Trip.slug == slug)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_trip_by_id_or_raise(self, trip_id: UUID) -> Trip:
        """
        Get trip by ID or raise NotFoundError.

        Raises:
            NotFoundError: If trip not found
        """
        trip = await self.get_trip_by_id(trip_id)
        if not trip:
            logger.warning(
                "Trip not found",
                extra={"trip_id": str(trip_id)}
            )
            raise NotFoundError(
                resource_type="trip",
                resource_id=str(trip_id)
            )
        return trip
