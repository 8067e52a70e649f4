"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
import structlog

from .config import settings

SERVICE_NAME = "tripdesk-booking-engine"
SERVICE_VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings initiated',
    ['trip_id'],
    registry=REGISTRY
)

PAYMENT_REVIEWS = Counter(
    'payment_reviews_total',
    'Payment proof reviews by stage and outcome',
    ['stage', 'outcome'],
    registry=REGISTRY
)

SEATS_UNAVAILABLE = Counter(
    'seat_reservations_rejected_total',
    'Seat reservations rejected because the batch was full',
    ['batch_id'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    registry=REGISTRY
)

BOOKINGS_EXPIRED = Counter(
    'bookings_expired_total',
    'Initiated bookings expired without payment proof',
    registry=REGISTRY
)

REFUNDS_PROCESSED = Counter(
    'refunds_processed_total',
    'Total refunds marked processed',
    registry=REGISTRY
)

NOTIFICATIONS = Counter(
    'notifications_dispatched_total',
    'Notifications handed to the messaging collaborator',
    ['template_kind', 'outcome'],
    registry=REGISTRY
)

RECONCILIATION_MISMATCHES = Gauge(
    'reconciliation_mismatches',
    'Mismatches found by the latest reconciliation run',
    ['kind'],
    registry=REGISTRY
)

BATCH_OCCUPANCY = Gauge(
    'batch_occupancy_percent',
    'Booked share of a batch in percent',
    ['batch_id'],
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_tracing(app_name: str = SERVICE_NAME):
    """Setup OpenTelemetry tracing."""
    resource = Resource.create({
        "service.name": app_name,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })

    provider = TracerProvider(resource=resource)
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)

    return trace.get_tracer(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_booking_created(trip_id: str):
        BOOKINGS_CREATED.labels(trip_id=trip_id).inc()

    @staticmethod
    def record_payment_review(stage: str, outcome: str):
        PAYMENT_REVIEWS.labels(stage=stage, outcome=outcome).inc()

    @staticmethod
    def record_seats_unavailable(batch_id: str):
        SEATS_UNAVAILABLE.labels(batch_id=batch_id).inc()

    @staticmethod
    def record_booking_cancelled():
        BOOKINGS_CANCELLED.inc()

    @staticmethod
    def record_bookings_expired(count: int):
        BOOKINGS_EXPIRED.inc(count)

    @staticmethod
    def record_refund_processed():
        REFUNDS_PROCESSED.inc()

    @staticmethod
    def record_notification(template_kind: str, outcome: str):
        NOTIFICATIONS.labels(template_kind=template_kind, outcome=outcome).inc()

    @staticmethod
    def set_reconciliation_mismatches(counts: dict[str, int]):
        """Publish mismatch counts per kind from the latest reconciliation run."""
        for kind, count in counts.items():
            RECONCILIATION_MISMATCHES.labels(kind=kind).set(count)

    @staticmethod
    def set_batch_occupancy(batch_id: str, batch_size: int, seats_booked: int):
        """Set occupancy percentage for a batch."""
        occupancy = (seats_booked / batch_size * 100) if batch_size > 0 else 0.0
        BATCH_OCCUPANCY.labels(batch_id=batch_id).set(occupancy)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
