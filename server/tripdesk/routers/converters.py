"""Model to response schema conversion shared by the routers."""

from ..models.audit import AuditLogEntry as AuditLogEntryModel
from ..models.batch import Batch as BatchModel
from ..models.booking import Booking as BookingModel
from ..models.payment import Payment as PaymentModel
from ..models.payment import Refund as RefundModel
from ..models.trip import Trip as TripModel
from ..schemas.audit import AuditLogEntry
from ..schemas.batch import Batch, BatchSummary, PriceQuote
from ..schemas.booking import Booking, ProofSlot
from ..schemas.payment import Payment, Refund
from ..schemas.trip import Trip
from ..services.inventory_service import available
from ..services.pricing import DynamicPrice


def convert_trip_to_schema(trip: TripModel) -> Trip:
    return Trip(
        id=str(trip.id),
        name=trip.name,
        slug=trip.slug,
        summary=trip.summary,
        default_price=trip.default_price,
        origin_prices=trip.origin_prices or {},
        advance_per_traveller=trip.advance_per_traveller,
        default_capacity=trip.default_capacity,
        is_active=trip.is_active,
        booking_live=trip.booking_live,
    )


def convert_batch_to_schema(batch: BatchModel) -> Batch:
    return Batch(
        id=str(batch.id),
        trip_id=str(batch.trip_id),
        name=batch.name,
        start_date=batch.start_date,
        end_date=batch.end_date,
        batch_size=batch.batch_size,
        seats_booked=batch.seats_booked,
        available_seats=available(batch),
        price_override=batch.price_override,
        status=batch.status,
    )


def convert_batch_to_summary(batch: BatchModel, price: DynamicPrice) -> BatchSummary:
    return BatchSummary(
        id=str(batch.id),
        name=batch.name,
        start_date=batch.start_date,
        end_date=batch.end_date,
        batch_size=batch.batch_size,
        seats_booked=batch.seats_booked,
        available_seats=available(batch),
        status=batch.status,
        pricing=PriceQuote(**price.as_dict()),
    )


def _proof_slot(booking: BookingModel, prefix: str) -> ProofSlot:
    return ProofSlot(
        asset_reference=getattr(booking, f"{prefix}_proof_ref"),
        status=getattr(booking, f"{prefix}_proof_status"),
        transaction_note=getattr(booking, f"{prefix}_proof_note"),
        uploaded_at=getattr(booking, f"{prefix}_uploaded_at"),
        verified_at=getattr(booking, f"{prefix}_verified_at"),
    )


def convert_booking_to_schema(booking: BookingModel) -> Booking:
    return Booking(
        id=str(booking.id),
        trip_id=str(booking.trip_id),
        batch_id=str(booking.batch_id) if booking.batch_id else None,
        user_id=booking.user_id,
        full_name=booking.full_name,
        email=booking.email,
        phone=booking.phone,
        pickup_location=booking.pickup_location,
        traveller_count=booking.traveller_count,
        total_amount=booking.total_amount,
        advance_amount=booking.advance_amount,
        advance_paid=booking.advance_paid,
        balance_due=booking.balance_due,
        seats_held=booking.seats_held,
        state=booking.state,
        booking_status=booking.booking_status,
        payment_status=booking.payment_status,
        advance_proof=_proof_slot(booking, "advance"),
        balance_proof=_proof_slot(booking, "balance"),
        rejection_reason=booking.rejection_reason,
        cancellation_reason=booking.cancellation_reason,
        cancelled_at=booking.cancelled_at,
        created_at=booking.created_at,
    )


def convert_payment_to_schema(payment: PaymentModel) -> Payment:
    return Payment(
        id=str(payment.id),
        booking_id=str(payment.booking_id),
        amount=payment.amount,
        method=payment.method,
        stage=payment.stage,
        status=payment.status,
        transaction_id=payment.transaction_id,
        recorded_by=payment.recorded_by,
        created_at=payment.created_at,
    )


def convert_refund_to_schema(refund: RefundModel) -> Refund:
    return Refund(
        id=str(refund.id),
        booking_id=str(refund.booking_id),
        amount=refund.amount,
        status=refund.status,
        reason=refund.reason,
        created_at=refund.created_at,
        processed_at=refund.processed_at,
        processed_by=refund.processed_by,
    )


def convert_audit_entry_to_schema(entry: AuditLogEntryModel) -> AuditLogEntry:
    return AuditLogEntry(
        id=str(entry.id),
        actor_id=entry.actor_id,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        metadata=entry.details or {},
        created_at=entry.created_at,
    )
