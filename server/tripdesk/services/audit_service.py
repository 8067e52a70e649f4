"""Audit log service: append within the caller's transaction, read by entity."""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.permissions import Actor, Permission, require_permission
from ..models.audit import AuditLogEntry

logger = logging.getLogger(__name__)


class AuditAction:
    """Action types written to the audit log."""
    BOOKING_CREATED = "booking_created"
    PROOF_UPLOADED = "payment_proof_uploaded"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_REJECTED = "payment_rejected"
    MANUAL_PAYMENT_RECORDED = "manual_payment_recorded"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_EXPIRED = "booking_expired"
    BOOKING_SOFT_DELETED = "booking_soft_deleted"
    BOOKING_HARD_DELETED = "booking_hard_deleted"
    REFUND_PROCESSED = "refund_processed"
    BATCH_CREATED = "batch_created"
    BATCH_CAPACITY_ADJUSTED = "batch_capacity_adjusted"
    BATCH_STATUS_CHANGED = "batch_status_changed"
    TRIP_CREATED = "trip_created"


class AuditService:
    """Service for the append-only audit log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        actor_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AuditLogEntry:
        """
        Append an entry to the audit log.

        The entry is flushed but not committed, so it lands or rolls back
        together with the change it describes.
        """
        entry = AuditLogEntry(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            details=metadata or {},
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "Audit entry recorded",
            extra={
                "actor_id": actor_id,
                "action": action,
                "entity_type": entity_type,
                "entity_id": str(entity_id)
            }
        )
        return entry

    async def list_entries(
        self,
        actor: Actor,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        """List audit entries newest first, optionally filtered."""
        require_permission(actor, Permission.VIEW_AUDIT_LOGS)

        stmt = select(AuditLogEntry)
        if entity_type:
            stmt = stmt.where(AuditLogEntry.entity_type == entity_type)
        if entity_id:
            stmt = stmt.where(AuditLogEntry.entity_id == entity_id)
        if actor_id:
            stmt = stmt.where(AuditLogEntry.actor_id == actor_id)
        stmt = stmt.order_by(AuditLogEntry.created_at.desc()).limit(limit)

        result = await self.db.execute(stmt)
        return list(result.scalars())
