"""Unit tests for the booking state machine."""

import pytest
from sqlalchemy import update

from tripdesk.core.exceptions import AlreadySettled, InvalidTransition
from tripdesk.models.booking import Booking, BookingState
from tripdesk.services.lifecycle import (
    TRANSITIONS,
    BookingEvent,
    allowed_events,
    apply_transition,
    next_state,
)

from conftest import create_batch


def test_happy_path_through_both_payments():
    state = BookingState.INITIATED
    for event in (
        BookingEvent.ADVANCE_UPLOADED,
        BookingEvent.ADVANCE_VERIFIED,
        BookingEvent.BALANCE_UPLOADED,
        BookingEvent.BALANCE_VERIFIED,
    ):
        state = next_state("b-1", state, event)
    assert state == BookingState.FULLY_PAID


def test_rejections_step_back_one_stage():
    assert next_state("b-1", BookingState.AWAITING_ADVANCE, BookingEvent.ADVANCE_REJECTED) == BookingState.AWAITING_ADVANCE
    assert next_state("b-1", BookingState.BALANCE_PENDING, BookingEvent.BALANCE_REJECTED) == BookingState.ADVANCE_VERIFIED


def test_reupload_keeps_awaiting_state():
    assert next_state("b-1", BookingState.AWAITING_ADVANCE, BookingEvent.ADVANCE_UPLOADED) == BookingState.AWAITING_ADVANCE
    assert next_state("b-1", BookingState.BALANCE_PENDING, BookingEvent.BALANCE_UPLOADED) == BookingState.BALANCE_PENDING


@pytest.mark.parametrize("state", [
    BookingState.INITIATED,
    BookingState.AWAITING_ADVANCE,
    BookingState.ADVANCE_VERIFIED,
    BookingState.BALANCE_PENDING,
    BookingState.FULLY_PAID,
])
def test_every_live_state_can_be_cancelled(state):
    assert next_state("b-1", state, BookingEvent.CANCELLED) == BookingState.CANCELLED


def test_only_initiated_bookings_expire():
    assert next_state("b-1", BookingState.INITIATED, BookingEvent.EXPIRED) == BookingState.EXPIRED
    with pytest.raises(InvalidTransition):
        next_state("b-1", BookingState.AWAITING_ADVANCE, BookingEvent.EXPIRED)


def test_verifying_a_fully_paid_booking_is_already_settled():
    with pytest.raises(AlreadySettled) as exc:
        next_state("b-1", BookingState.FULLY_PAID, BookingEvent.BALANCE_VERIFIED)
    assert exc.value.status_code == 409
    assert exc.value.code == "ALREADY_SETTLED"


@pytest.mark.parametrize("state", [BookingState.REFUNDED, BookingState.EXPIRED])
def test_terminal_states_accept_nothing(state):
    assert state.is_terminal
    assert allowed_events(state) == []
    for event in BookingEvent:
        with pytest.raises(InvalidTransition):
            next_state("b-1", state, event)


def test_cancelled_only_moves_to_refunded():
    assert allowed_events(BookingState.CANCELLED) == [BookingEvent.REFUND_PROCESSED]


def test_verification_requires_an_upload_first():
    with pytest.raises(InvalidTransition) as exc:
        next_state("b-1", BookingState.INITIATED, BookingEvent.ADVANCE_VERIFIED)
    assert exc.value.code == "INVALID_TRANSITION"


def test_initiated_events_in_table_order():
    assert allowed_events(BookingState.INITIATED) == [
        BookingEvent.ADVANCE_UPLOADED,
        BookingEvent.CANCELLED,
        BookingEvent.EXPIRED,
    ]


def test_every_target_is_a_known_state():
    assert set(TRANSITIONS.values()) <= set(BookingState)


@pytest.mark.parametrize("state, booking_status, payment_status", [
    (BookingState.INITIATED, "initiated", "pending"),
    (BookingState.AWAITING_ADVANCE, "pending", "pending_advance"),
    (BookingState.ADVANCE_VERIFIED, "confirmed", "advance_verified"),
    (BookingState.BALANCE_PENDING, "confirmed", "balance_pending"),
    (BookingState.FULLY_PAID, "confirmed", "fully_paid"),
    (BookingState.CANCELLED, "cancelled", "cancelled"),
    (BookingState.REFUNDED, "refunded", "refunded"),
    (BookingState.EXPIRED, "expired", "expired"),
])
def test_status_projections(state, booking_status, payment_status):
    assert state.booking_status == booking_status
    assert state.payment_status == payment_status


async def _insert_booking(session, trip, batch) -> Booking:
    booking = Booking(
        trip_id=trip.id,
        batch_id=batch.id,
        user_id="traveller-1",
        full_name="Asha Verma",
        email="asha@example.com",
        phone="9876543210",
        traveller_count=1,
        total_amount=10000,
        advance_amount=2000,
    )
    session.add(booking)
    await session.commit()
    await session.refresh(booking)
    return booking


@pytest.mark.asyncio
async def test_apply_transition_writes_state_and_changes(test_session, trip):
    batch = await create_batch(test_session, trip)
    booking = await _insert_booking(test_session, trip, batch)

    target = await apply_transition(
        test_session,
        booking,
        BookingEvent.ADVANCE_UPLOADED,
        {"advance_proof_ref": "proofs/abc.png"},
    )
    await test_session.commit()

    assert target == BookingState.AWAITING_ADVANCE
    assert booking.state == "awaiting_advance"
    assert booking.advance_proof_ref == "proofs/abc.png"


@pytest.mark.asyncio
async def test_apply_transition_loses_race_against_stale_read(test_session, trip):
    batch = await create_batch(test_session, trip)
    booking = await _insert_booking(test_session, trip, batch)

    # Another writer moves the row on without this session noticing
    await test_session.execute(
        update(Booking)
        .where(Booking.id == booking.id)
        .values(state=BookingState.CANCELLED.value)
        .execution_options(synchronize_session=False)
    )
    assert booking.state == "initiated"

    with pytest.raises(InvalidTransition):
        await apply_transition(test_session, booking, BookingEvent.ADVANCE_UPLOADED)


@pytest.mark.asyncio
async def test_apply_transition_honours_guard(test_session, trip):
    batch = await create_batch(test_session, trip)
    booking = await _insert_booking(test_session, trip, batch)

    with pytest.raises(InvalidTransition):
        await apply_transition(
            test_session,
            booking,
            BookingEvent.CANCELLED,
            guard=[Booking.seats_held == 5],
        )
