"""Batch router for inventory queries and staff overrides."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import RequiredActor
from ..core.permissions import Actor
from ..models.batch import BatchStatus
from ..schemas.batch import (
    AdjustCapacityRequest,
    Batch,
    CreateBatchRequest,
    ListBatchesRequest,
    ListBatchesResponse,
    SetBatchStatusRequest,
)
from ..services.inventory_service import InventoryService
from .converters import convert_batch_to_schema, convert_batch_to_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/batch", tags=["batch"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/list", response_model=ListBatchesResponse)
async def list_batches(
    request: ListBatchesRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    List bookable batches of a trip with live seat counts and price quotes.

    Public: travellers browse batches before signing in.
    """
    quoted = await InventoryService(db).list_active_batches(
        request.trip_id,
        pickup_location=request.pickup_location,
    )
    response_data = ListBatchesResponse(
        items=[convert_batch_to_summary(batch, price) for batch, price in quoted]
    )

    logger.debug(
        "Batch list served",
        extra={"trip_id": request.trip_id, "batch_count": len(response_data.items)}
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/create", response_model=Batch)
async def create_batch(
    request: CreateBatchRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Schedule a new batch."""
    batch = await InventoryService(db).create_batch(request, actor)
    return JSONResponse(status_code=200, content=convert_batch_to_schema(batch).model_dump(mode="json"))


@router.post("/adjust-capacity", response_model=Batch)
async def adjust_capacity(
    request: AdjustCapacityRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Grow or shrink a batch. Cannot shrink below the seats already booked."""
    batch = await InventoryService(db).adjust_capacity(request.batch_id, request.delta, request.reason, actor)
    return JSONResponse(status_code=200, content=convert_batch_to_schema(batch).model_dump(mode="json"))


@router.post("/set-status", response_model=Batch)
async def set_batch_status(
    request: SetBatchStatusRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Open, close or complete a batch."""
    batch = await InventoryService(db).set_status(
        request.batch_id,
        BatchStatus(request.status.value),
        request.reason,
        actor,
    )
    return JSONResponse(status_code=200, content=convert_batch_to_schema(batch).model_dump(mode="json"))
