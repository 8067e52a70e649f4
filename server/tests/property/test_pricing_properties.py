"""Property-based tests for pricing invariants."""

from datetime import date, timedelta

from hypothesis import given
from hypothesis import strategies as st

from tripdesk.services.pricing import PricingPolicy, calculate_dynamic_price

AS_OF = date(2026, 3, 1)

# Strategies for generating test data
base_prices = st.integers(min_value=0, max_value=500000)
batch_sizes = st.integers(min_value=0, max_value=200)
day_offsets = st.integers(min_value=-30, max_value=365)
urgency_modes = st.sampled_from(["surge", "clearance"])


@st.composite
def batches(draw):
    size = draw(batch_sizes)
    available = draw(st.integers(min_value=0, max_value=size))
    return size, available


@given(base=base_prices, batch=batches(), days=day_offsets, mode=urgency_modes)
def test_adjustment_stays_inside_band(base, batch, days, mode):
    """The applied adjustment never leaves the configured band."""
    size, available = batch
    policy = PricingPolicy(urgency_mode=mode)

    price = calculate_dynamic_price(base, size, available, AS_OF + timedelta(days=days), AS_OF, policy)

    assert policy.min_adjustment_percent <= price.adjustment_percent <= policy.max_adjustment_percent
    assert price.effective_price >= 0
    assert price.base_price == base


@given(base=base_prices, batch=batches(), days=day_offsets, mode=urgency_modes)
def test_price_is_deterministic(base, batch, days, mode):
    """Same inputs, same quote."""
    size, available = batch
    policy = PricingPolicy(urgency_mode=mode)
    departure = AS_OF + timedelta(days=days)

    first = calculate_dynamic_price(base, size, available, departure, AS_OF, policy)
    second = calculate_dynamic_price(base, size, available, departure, AS_OF, policy)

    assert first == second


@given(base=base_prices, batch=batches(), days=day_offsets)
def test_effective_price_within_band_of_base(base, batch, days):
    """Effective price is the base moved by at most the band, rounded to a rupee."""
    size, available = batch
    price = calculate_dynamic_price(base, size, available, AS_OF + timedelta(days=days), AS_OF, PricingPolicy())

    assert base * 80 / 100 - 1 <= price.effective_price <= base * 125 / 100 + 1


@given(base=base_prices, size=st.integers(min_value=1, max_value=200), days=day_offsets)
def test_sold_out_batches_are_badged(base, size, days):
    price = calculate_dynamic_price(base, size, 0, AS_OF + timedelta(days=days), AS_OF, PricingPolicy())

    labels = [badge.label for badge in price.badges]
    assert "Sold Out" in labels
    assert "Filling Fast" not in labels


@given(base=base_prices, batch=batches(), days=day_offsets)
def test_more_bookings_never_lower_the_price(base, batch, days):
    """Occupancy only ever pushes the price up."""
    size, available = batch
    departure = AS_OF + timedelta(days=days)
    emptier = calculate_dynamic_price(base, size, min(available + 1, size), departure, AS_OF, PricingPolicy())
    fuller = calculate_dynamic_price(base, size, available, departure, AS_OF, PricingPolicy())

    assert fuller.effective_price >= emptier.effective_price
