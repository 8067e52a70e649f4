"""Trip router for catalogue operations."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import RequiredActor
from ..core.permissions import Actor
from ..schemas.trip import CreateTripRequest, GetTripRequest, Trip
from ..services.common import parse_uuid
from ..services.trip_service import TripService
from .converters import convert_trip_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/trip", tags=["trip"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/create", response_model=Trip)
async def create_trip(
    request: CreateTripRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Create a new trip. Slugs are unique."""
    trip = await TripService(db).create_trip(request, actor)
    return JSONResponse(
        status_code=200,
        content=convert_trip_to_schema(trip).model_dump(mode="json")
    )


@router.post("/get", response_model=Trip)
async def get_trip(
    request: GetTripRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get a trip by ID."""
    trip = await TripService(db).get_trip_by_id_or_raise(parse_uuid(request.trip_id, "trip_id"))
    return JSONResponse(
        status_code=200,
        content=convert_trip_to_schema(trip).model_dump(mode="json")
    )
