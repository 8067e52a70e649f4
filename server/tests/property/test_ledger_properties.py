"""Property-based tests for reconciliation and lifecycle invariants."""

from hypothesis import given
from hypothesis import strategies as st

from tripdesk.core.exceptions import InvalidTransition
from tripdesk.models.booking import BookingState
from tripdesk.services.lifecycle import BookingEvent, TRANSITIONS, allowed_events, next_state
from tripdesk.services.reconciliation_service import BookingRow, PaymentRow, RefundRow, detect_mismatches

amounts = st.integers(min_value=1, max_value=200000)


@st.composite
def consistent_ledgers(draw):
    """Bookings whose statuses agree with the payments and refunds recorded for them."""
    bookings, payments, refunds = [], [], []
    for i in range(draw(st.integers(min_value=0, max_value=15))):
        booking_id = f"b{i}"
        total = draw(amounts)
        advance = draw(st.integers(min_value=1, max_value=total))
        state = draw(st.sampled_from([
            BookingState.INITIATED,
            BookingState.ADVANCE_VERIFIED,
            BookingState.FULLY_PAID,
            BookingState.CANCELLED,
            BookingState.REFUNDED,
        ]))

        if state == BookingState.INITIATED:
            advance_paid = 0
        else:
            advance_paid = advance
            if state == BookingState.FULLY_PAID:
                # split the total across one or two stages
                split = draw(st.integers(min_value=1, max_value=total))
                payments.append(PaymentRow(booking_id, split))
                if total - split:
                    payments.append(PaymentRow(booking_id, total - split))
            else:
                payments.append(PaymentRow(booking_id, advance))

        if state == BookingState.CANCELLED:
            refunds.append(RefundRow(booking_id, draw(st.integers(min_value=0, max_value=advance)), "pending"))
        if state == BookingState.REFUNDED:
            refunds.append(RefundRow(booking_id, draw(st.integers(min_value=0, max_value=advance)), "processed"))

        bookings.append(BookingRow(
            id=booking_id,
            booking_status=state.booking_status,
            payment_status=state.payment_status,
            total_amount=total,
            advance_paid=advance_paid,
        ))
    return bookings, payments, refunds


@given(ledger=consistent_ledgers())
def test_consistent_ledger_has_no_mismatches(ledger):
    bookings, payments, refunds = ledger

    assert detect_mismatches(bookings, payments, refunds) == []


@given(ledger=consistent_ledgers(), extra=amounts)
def test_extra_payment_on_fully_paid_booking_is_flagged(ledger, extra):
    bookings, payments, refunds = ledger
    paid = [b for b in bookings if b.payment_status == "fully_paid"]

    issues = detect_mismatches(bookings, payments + [PaymentRow(b.id, extra) for b in paid], refunds)

    assert sorted(i.booking_id for i in issues) == sorted(b.id for b in paid)
    assert all(i.kind == "amount_mismatch" for i in issues)


@given(events=st.lists(st.sampled_from(list(BookingEvent)), max_size=25))
def test_any_event_sequence_stays_in_the_state_machine(events):
    """Every accepted event follows the table; terminal states accept nothing."""
    state = BookingState.INITIATED
    for event in events:
        try:
            target = next_state("b1", state, event)
        except InvalidTransition:
            assert event not in allowed_events(state)
            continue
        assert TRANSITIONS[(state, event)] == target
        assert not state.is_terminal
        state = target
