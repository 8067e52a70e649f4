"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_structured_logging,
    setup_tracing,
)
from .routers import (
    audit_router,
    batch_router,
    booking_router,
    health_router,
    metrics_router,
    payment_router,
    reconciliation_router,
    refund_router,
    trip_router,
)
from .schemas.health import HealthStatus, ReadinessResponse
from .services.notification_service import get_dispatcher
from .workers.manager import worker_manager

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Creates tables outside production (migrations own the schema there),
    then starts the expiry, reminder and reconciliation workers.
    """
    logger.info(
        "Starting booking engine",
        extra={"environment": settings.environment, "debug": settings.debug}
    )

    try:
        setup_tracing(SERVICE_NAME)
        instrument_sqlalchemy(engine)

        if not settings.is_production:
            await init_db()
            logger.info("Database schema ensured")

        if settings.workers_enabled:
            await worker_manager.start_all()
            logger.info("Background workers started")
    except Exception as e:
        logger.error("Failed to initialize application", extra={"error": str(e)})
        raise

    yield

    logger.info("Shutting down booking engine")
    try:
        await worker_manager.stop_all()
        await get_dispatcher().close()
        await close_db()
    except Exception as e:
        logger.error("Error during application cleanup", extra={"error": str(e)})

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Tripdesk Booking Engine",
        description=(
            "RPC-over-HTTP engine for batch seat inventory, dynamic pricing, "
            "proof-based payment verification, cancellations and reconciliation"
        ),
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    setup_middleware(app, enable_logging=True)

    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        response_model=dict,
    )
    async def health_check():
        """Liveness: the process is up and serving."""
        return {
            "status": HealthStatus.HEALTHY.value,
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        response_model=ReadinessResponse,
    )
    async def readiness_check():
        """Readiness: the database answers and the workers are in the expected state."""
        checks = {}
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as e:
            logger.warning("Readiness database check failed", extra={"error": str(e)})
            checks["database"] = "unavailable"

        if settings.workers_enabled:
            checks["workers"] = "ok" if all(worker_manager.get_worker_status().values()) else "stopped"

        ready = all(value == "ok" for value in checks.values())
        response_data = ReadinessResponse(
            status=HealthStatus.READY if ready else HealthStatus.DEGRADED,
            service=SERVICE_NAME,
            checks=checks,
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response_data.model_dump(mode="json"),
        )

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        response_model=dict,
    )
    async def service_info():
        """Service information and active policy knobs."""
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
            "currency": settings.currency,
            "policies": {
                "pricing_urgency_mode": settings.pricing_urgency_mode,
                "late_cancellation_window_hours": settings.late_cancellation_window_hours,
                "initiated_booking_ttl_minutes": settings.initiated_booking_ttl_minutes,
                "balance_reminder_days": settings.balance_reminder_days,
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
            },
        }

    app.include_router(health_router)
    app.include_router(trip_router)
    app.include_router(batch_router)
    app.include_router(booking_router)
    app.include_router(payment_router)
    app.include_router(refund_router)
    app.include_router(reconciliation_router)
    app.include_router(audit_router)
    app.include_router(metrics_router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tripdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
