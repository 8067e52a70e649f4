"""Liveness and readiness Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    READY = "ready"
    DEGRADED = "degraded"


class HealthResponse(BaseModel):
    """Liveness ping response schema."""

    status: HealthStatus = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601)")
    version: str = Field(..., description="Engine version")


class ReadinessResponse(BaseModel):
    """Readiness response schema; one entry per dependency checked."""

    status: HealthStatus = Field(..., description="ready, or degraded when a check fails")
    service: str = Field(..., description="Service name")
    checks: dict[str, str] = Field(default_factory=dict, description="Check name to 'ok' or the failure")
