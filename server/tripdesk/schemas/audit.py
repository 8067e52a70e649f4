"""Audit log Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ListAuditLogRequest(BaseModel):
    """Request schema for reading the audit log."""

    entity_type: str | None = Field(None, description="booking, batch, refund or trip")
    entity_id: str | None = Field(None, description="Entity ID")
    actor_id: str | None = Field(None, description="Actor who performed the action")
    limit: int = Field(100, ge=1, le=500, description="Maximum entries to return")


class AuditLogEntry(BaseModel):
    """Audit log entry response schema."""

    id: str = Field(..., description="Entry ID")
    actor_id: str = Field(..., description="Actor who performed the action")
    action: str = Field(..., description="Action type")
    entity_type: str = Field(..., description="Entity type")
    entity_id: str = Field(..., description="Entity ID")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Action details")
    created_at: datetime = Field(..., description="Entry time (ISO 8601)")


class ListAuditLogResponse(BaseModel):
    """Response schema for audit log reads."""

    items: list[AuditLogEntry] = Field(..., description="Entries, newest first")
