"""Unit tests for booking creation, visibility, expiry and deletion."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from tripdesk.core.clock import utcnow
from tripdesk.core.config import settings
from tripdesk.core.exceptions import (
    AuthorizationError,
    InvalidTransition,
    NotFoundError,
    SeatsUnavailable,
    ValidationError,
)
from tripdesk.models.audit import AuditLogEntry
from tripdesk.models.booking import Booking, PaymentStage
from tripdesk.models.payment import Payment
from tripdesk.models.trip import Trip
from tripdesk.services.booking_service import BookingService, advance_due
from tripdesk.services.cancellation_service import CancellationService
from tripdesk.services.payment_service import PaymentService

from conftest import confirm_advance, create_batch, create_trip, new_booking, set_seats_booked


@pytest.mark.asyncio
async def test_create_booking_starts_initiated_without_holding_seats(test_session, trip, batch, traveller, notifier):
    booking = await new_booking(test_session, trip, batch, traveller, traveller_count=2, total_amount=20000)

    assert booking.state == "initiated"
    assert booking.booking_status == "initiated"
    assert booking.payment_status == "pending"
    assert booking.seats_held == 0
    assert booking.advance_amount == 4000
    assert booking.user_id == traveller.id

    await test_session.refresh(batch)
    assert batch.seats_booked == 0

    await notifier.drain()
    sent = notifier.sink.sent
    assert [p.template_kind for p in sent] == ["booking_created"]
    assert sent[0].recipient_phone == "919876543210"
    assert sent[0].substitution_values["amount_to_pay"] == "₹4,000"


@pytest.mark.asyncio
async def test_create_booking_quotes_total_when_omitted(test_session, trip, batch, traveller):
    booking = await new_booking(
        test_session, trip, batch, traveller, traveller_count=2, total_amount=None, pickup_location="Delhi"
    )

    # 40 days out earns the early bird discount on the Delhi price
    assert booking.total_amount == 19000


def test_advance_is_capped_at_total():
    trip = Trip(advance_per_traveller=2000)
    assert advance_due(trip, 2, 1000) == 1000
    assert advance_due(trip, 3, 30000) == 6000


def test_advance_falls_back_to_default():
    trip = Trip(advance_per_traveller=None)
    assert advance_due(trip, 1, 50000) == settings.default_advance_per_traveller


@pytest.mark.asyncio
async def test_create_booking_rejects_large_parties(test_session, trip, batch, traveller):
    with pytest.raises(ValidationError):
        await new_booking(test_session, trip, batch, traveller, traveller_count=settings.max_travellers_per_booking + 1)


@pytest.mark.asyncio
async def test_create_booking_fails_fast_when_batch_is_full(test_session, trip, batch, traveller):
    await set_seats_booked(test_session, batch, 9)

    with pytest.raises(SeatsUnavailable):
        await new_booking(test_session, trip, batch, traveller, traveller_count=2)

    count = await test_session.scalar(select(func.count()).select_from(Booking))
    assert count == 0


@pytest.mark.asyncio
async def test_create_booking_rejects_batch_of_another_trip(test_session, trip, traveller):
    other_trip = await create_trip(test_session, slug="hampta-pass", name="Hampta Pass")
    other_batch = await create_batch(test_session, other_trip)

    with pytest.raises(ValidationError):
        await new_booking(test_session, trip, other_batch, traveller)


@pytest.mark.asyncio
async def test_create_booking_rejects_departed_batch(test_session, trip, traveller):
    departed = await create_batch(test_session, trip, days_out=-1)

    with pytest.raises(ValidationError):
        await new_booking(test_session, trip, departed, traveller)


@pytest.mark.asyncio
async def test_create_booking_rejects_closed_trip(test_session, traveller):
    closed = await create_trip(test_session, slug="closed-trip", booking_live=False)

    with pytest.raises(ValidationError):
        await new_booking(test_session, closed, None, traveller)


@pytest.mark.asyncio
async def test_get_booking_is_private_to_owner_and_staff(test_session, trip, batch, traveller, other_traveller, support_staff):
    booking = await new_booking(test_session, trip, batch, traveller)
    service = BookingService(test_session)

    assert (await service.get_booking(str(booking.id), traveller)).id == booking.id
    assert (await service.get_booking(str(booking.id), support_staff)).id == booking.id
    with pytest.raises(NotFoundError):
        await service.get_booking(str(booking.id), other_traveller)


@pytest.mark.asyncio
async def test_get_booking_rejects_malformed_id(test_session, traveller):
    with pytest.raises(ValidationError):
        await BookingService(test_session).get_booking("not-a-uuid", traveller)


@pytest.mark.asyncio
async def test_list_my_bookings_excludes_others_and_deleted(test_session, trip, batch, traveller, other_traveller, admin):
    mine = await new_booking(test_session, trip, batch, traveller)
    hidden = await new_booking(test_session, trip, batch, traveller)
    await new_booking(test_session, trip, batch, other_traveller)
    service = BookingService(test_session)
    await service.soft_delete(str(hidden.id), admin)

    listed = await service.list_my_bookings(traveller)

    assert [b.id for b in listed] == [mine.id]


@pytest.mark.asyncio
async def test_expire_stale_bookings_only_touches_initiated(test_session, trip, batch, traveller):
    stale = await new_booking(test_session, trip, batch, traveller)
    uploaded = await new_booking(test_session, trip, batch, traveller)
    await PaymentService(test_session).upload_proof(str(uploaded.id), PaymentStage.ADVANCE, "proofs/a.png", traveller)

    later = utcnow() + timedelta(minutes=settings.initiated_booking_ttl_minutes + 1)
    expired = await BookingService(test_session).expire_stale_bookings(now=later)

    assert expired == 1
    await test_session.refresh(stale)
    await test_session.refresh(uploaded)
    assert stale.state == "expired"
    assert uploaded.state == "awaiting_advance"

    actions = (await test_session.execute(
        select(AuditLogEntry.action).where(AuditLogEntry.entity_id == str(stale.id))
    )).scalars().all()
    assert "booking_expired" in actions


@pytest.mark.asyncio
async def test_expire_stale_bookings_leaves_fresh_ones(test_session, trip, batch, traveller):
    await new_booking(test_session, trip, batch, traveller)

    assert await BookingService(test_session).expire_stale_bookings() == 0


@pytest.mark.asyncio
async def test_soft_delete_releases_seats_and_freezes_booking(test_session, trip, batch, traveller, admin):
    booking = await new_booking(test_session, trip, batch, traveller, traveller_count=3, total_amount=30000)
    booking = await confirm_advance(test_session, booking, traveller, admin)
    await test_session.refresh(batch)
    assert batch.seats_booked == 3

    deleted = await BookingService(test_session).soft_delete(str(booking.id), admin)

    assert deleted.is_deleted
    assert deleted.deleted_by == admin.id
    assert deleted.seats_held == 0
    await test_session.refresh(batch)
    assert batch.seats_booked == 0
    assert batch.available_seats == 10

    with pytest.raises(NotFoundError):
        await BookingService(test_session).get_booking(str(booking.id), traveller)
    with pytest.raises(NotFoundError):
        await CancellationService(test_session).cancel(str(booking.id), "change of plans", 0, admin)


@pytest.mark.asyncio
async def test_soft_delete_twice_is_refused(test_session, trip, batch, traveller, admin):
    booking = await new_booking(test_session, trip, batch, traveller)
    service = BookingService(test_session)
    await service.soft_delete(str(booking.id), admin)

    with pytest.raises(InvalidTransition):
        await service.soft_delete(str(booking.id), admin)


@pytest.mark.asyncio
async def test_soft_delete_requires_permission(test_session, trip, batch, traveller):
    booking = await new_booking(test_session, trip, batch, traveller)

    with pytest.raises(AuthorizationError):
        await BookingService(test_session).soft_delete(str(booking.id), traveller)


@pytest.mark.asyncio
async def test_hard_delete_is_super_admin_only(test_session, trip, batch, traveller, admin):
    booking = await new_booking(test_session, trip, batch, traveller)

    with pytest.raises(AuthorizationError):
        await BookingService(test_session).hard_delete(str(booking.id), admin)


@pytest.mark.asyncio
async def test_hard_delete_removes_rows_and_keeps_audit(test_session, trip, batch, traveller, admin, super_admin):
    booking = await new_booking(test_session, trip, batch, traveller, traveller_count=2, total_amount=20000)
    booking = await confirm_advance(test_session, booking, traveller, admin)
    booking_id = booking.id

    released = await BookingService(test_session).hard_delete(str(booking_id), super_admin)

    assert released == 2
    assert await test_session.scalar(select(func.count()).select_from(Booking)) == 0
    assert await test_session.scalar(select(func.count()).select_from(Payment)) == 0
    await test_session.refresh(batch)
    assert batch.seats_booked == 0

    entry = (await test_session.execute(
        select(AuditLogEntry).where(AuditLogEntry.action == "booking_hard_deleted")
    )).scalar_one()
    assert entry.entity_id == str(booking_id)
    assert entry.details["payments_removed"] == 1
