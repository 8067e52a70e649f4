"""Audit log router."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import RequiredActor
from ..core.permissions import Actor
from ..schemas.audit import ListAuditLogRequest, ListAuditLogResponse
from ..services.audit_service import AuditService
from .converters import convert_audit_entry_to_schema

router = APIRouter(prefix="/v1/audit", tags=["audit"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/list", response_model=ListAuditLogResponse)
async def list_audit_log(
    request: ListAuditLogRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = RequiredActor
) -> JSONResponse:
    """Read audit entries by entity or actor, newest first."""
    entries = await AuditService(db).list_entries(
        actor,
        entity_type=request.entity_type,
        entity_id=request.entity_id,
        actor_id=request.actor_id,
        limit=request.limit,
    )
    response_data = ListAuditLogResponse(items=[convert_audit_entry_to_schema(e) for e in entries])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
