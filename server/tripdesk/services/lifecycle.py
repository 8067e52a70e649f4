"""Booking lifecycle transition table and compare-and-swap state writes."""

import logging
from enum import Enum
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import AlreadySettled, InvalidTransition
from ..models.booking import Booking, BookingState

logger = logging.getLogger(__name__)


class BookingEvent(str, Enum):
    """Events that move a booking between states."""
    ADVANCE_UPLOADED = "advance_uploaded"
    ADVANCE_VERIFIED = "advance_verified"
    ADVANCE_REJECTED = "advance_rejected"
    BALANCE_UPLOADED = "balance_uploaded"
    BALANCE_VERIFIED = "balance_verified"
    BALANCE_REJECTED = "balance_rejected"
    CANCELLED = "cancelled"
    REFUND_PROCESSED = "refund_processed"
    EXPIRED = "expired"


S = BookingState
E = BookingEvent

TRANSITIONS: dict[tuple[BookingState, BookingEvent], BookingState] = {
    (S.INITIATED, E.ADVANCE_UPLOADED): S.AWAITING_ADVANCE,
    (S.AWAITING_ADVANCE, E.ADVANCE_UPLOADED): S.AWAITING_ADVANCE,
    (S.AWAITING_ADVANCE, E.ADVANCE_VERIFIED): S.ADVANCE_VERIFIED,
    (S.AWAITING_ADVANCE, E.ADVANCE_REJECTED): S.AWAITING_ADVANCE,
    (S.ADVANCE_VERIFIED, E.BALANCE_UPLOADED): S.BALANCE_PENDING,
    (S.BALANCE_PENDING, E.BALANCE_UPLOADED): S.BALANCE_PENDING,
    (S.BALANCE_PENDING, E.BALANCE_VERIFIED): S.FULLY_PAID,
    (S.BALANCE_PENDING, E.BALANCE_REJECTED): S.ADVANCE_VERIFIED,
    (S.INITIATED, E.CANCELLED): S.CANCELLED,
    (S.AWAITING_ADVANCE, E.CANCELLED): S.CANCELLED,
    (S.ADVANCE_VERIFIED, E.CANCELLED): S.CANCELLED,
    (S.BALANCE_PENDING, E.CANCELLED): S.CANCELLED,
    (S.FULLY_PAID, E.CANCELLED): S.CANCELLED,
    (S.CANCELLED, E.REFUND_PROCESSED): S.REFUNDED,
    (S.INITIATED, E.EXPIRED): S.EXPIRED,
}

del S, E

_VERIFY_EVENTS = (BookingEvent.ADVANCE_VERIFIED, BookingEvent.BALANCE_VERIFIED)


def next_state(booking_id: str, current: BookingState, event: BookingEvent) -> BookingState:
    """
    Look up the target state for an event.

    Raises:
        AlreadySettled: If a verification targets a fully paid booking
        InvalidTransition: If the current state does not accept the event
    """
    target = TRANSITIONS.get((current, event))
    if target is not None:
        return target
    if current == BookingState.FULLY_PAID and event in _VERIFY_EVENTS:
        raise AlreadySettled(booking_id=booking_id, event=event.value)
    raise InvalidTransition(booking_id=booking_id, current_state=current.value, event=event.value)


def allowed_events(current: BookingState) -> list[BookingEvent]:
    """Events the given state accepts, in table order."""
    return [event for (state, event) in TRANSITIONS if state == current]


async def apply_transition(
    db: AsyncSession,
    booking: Booking,
    event: BookingEvent,
    changes: dict[str, Any] | None = None,
    guard: list | None = None,
) -> BookingState:
    """
    Move a booking to the event's target state with a compare-and-swap.

    The UPDATE only matches while the row is still in the state this caller
    read, so two racing transitions cannot both apply. Extra column values in
    ``changes`` are written in the same statement; ``guard`` adds conditions.
    The caller owns the transaction.

    Raises:
        InvalidTransition: If the event is illegal or another writer got there first
    """
    booking_id = str(booking.id)
    current = booking.lifecycle_state
    target = next_state(booking_id, current, event)

    values = dict(changes or {})
    values["state"] = target.value

    stmt = (
        update(Booking)
        .where(Booking.id == booking.id, Booking.state == current.value, *(guard or []))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)

    if result.rowcount != 1:
        logger.warning(
            "Booking transition lost compare-and-swap",
            extra={
                "booking_id": booking_id,
                "expected_state": current.value,
                "event": event.value
            }
        )
        raise InvalidTransition(
            booking_id=booking_id,
            current_state=current.value,
            event=event.value,
            detail=(
                f"Booking {booking_id} changed while '{event.value}' was being applied. "
                f"Reload the booking and try again."
            ),
        )

    await db.refresh(booking)

    logger.info(
        "Booking transitioned",
        extra={
            "booking_id": booking_id,
            "from_state": current.value,
            "to_state": target.value,
            "event": event.value
        }
    )
    return target
