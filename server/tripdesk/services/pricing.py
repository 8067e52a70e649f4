"""Dynamic pricing for batches.

Prices move with occupancy and with how close the departure is. The function
here is pure: it reads no clock and touches no storage, so the same quote can
be shown on a listing page and reproduced when the booking is created.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ..core.config import settings

HIGH_DEMAND_PERCENT = 85
HIGH_DEMAND_SURCHARGE = 15
RISING_DEMAND_PERCENT = 70
RISING_DEMAND_SURCHARGE = 8
FILLING_FAST_PERCENT = 80

LAST_MINUTE_DAYS = 7
LAST_MINUTE_ADJUSTMENT = 10
EARLY_BIRD_DAYS = 30
EARLY_BIRD_DISCOUNT = 5

URGENCY_SURGE = "surge"
URGENCY_CLEARANCE = "clearance"


@dataclass(frozen=True)
class PricingPolicy:
    """Tunable knobs of the pricing function."""

    urgency_mode: str = URGENCY_SURGE
    min_adjustment_percent: int = -20
    max_adjustment_percent: int = 25

    @classmethod
    def from_settings(cls) -> "PricingPolicy":
        return cls(
            urgency_mode=settings.pricing_urgency_mode,
            min_adjustment_percent=settings.pricing_min_adjustment_percent,
            max_adjustment_percent=settings.pricing_max_adjustment_percent,
        )


@dataclass(frozen=True)
class Badge:
    label: str
    type: str


@dataclass(frozen=True)
class DynamicPrice:
    base_price: int
    effective_price: int
    adjustment_percent: int
    badges: list[Badge] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "base_price": self.base_price,
            "effective_price": self.effective_price,
            "adjustment_percent": self.adjustment_percent,
            "badges": [{"label": b.label, "type": b.type} for b in self.badges],
        }


def _booked_at_least(seats_booked: int, batch_size: int, percent: int) -> bool:
    # Integer comparison so 85% of 20 seats is exactly 17
    return batch_size > 0 and seats_booked * 100 >= percent * batch_size


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_dynamic_price(
    base_price: int,
    batch_size: int,
    seats_available: int,
    departure_date: date,
    as_of: date,
    policy: PricingPolicy | None = None,
) -> DynamicPrice:
    """
    Quote the per-traveller price of a batch.

    Args:
        base_price: Price before adjustments, in rupees
        batch_size: Total seats in the batch
        seats_available: Seats not yet reserved
        departure_date: Batch start date
        as_of: Date the quote is computed for
        policy: Pricing knobs; read from settings when omitted

    Returns:
        DynamicPrice with the clamped adjustment and display badges
    """
    policy = policy or PricingPolicy.from_settings()
    base_price = max(int(base_price), 0)
    batch_size = max(int(batch_size), 0)
    seats_available = min(max(int(seats_available), 0), batch_size)
    seats_booked = batch_size - seats_available
    days_to_departure = (departure_date - as_of).days

    adjustment = 0
    badges: list[Badge] = []

    # Occupancy tiers are mutually exclusive
    if _booked_at_least(seats_booked, batch_size, HIGH_DEMAND_PERCENT):
        adjustment += HIGH_DEMAND_SURCHARGE
        badges.append(Badge("High Demand", "surge"))
    elif _booked_at_least(seats_booked, batch_size, RISING_DEMAND_PERCENT):
        adjustment += RISING_DEMAND_SURCHARGE
        badges.append(Badge("High Demand", "surge"))

    if seats_available > 0 and _booked_at_least(seats_booked, batch_size, FILLING_FAST_PERCENT):
        badges.append(Badge("Filling Fast", "info"))
    elif batch_size > 0 and seats_available == 0:
        badges.append(Badge("Sold Out", "info"))

    if 0 <= days_to_departure <= LAST_MINUTE_DAYS:
        if policy.urgency_mode == URGENCY_CLEARANCE:
            adjustment -= LAST_MINUTE_ADJUSTMENT
            badges.append(Badge("Last Minute Deal", "discount"))
        else:
            adjustment += LAST_MINUTE_ADJUSTMENT
            badges.append(Badge("Last Minute", "surge"))
    elif days_to_departure > EARLY_BIRD_DAYS:
        adjustment -= EARLY_BIRD_DISCOUNT
        badges.append(Badge("Early Bird Offer", "discount"))

    adjustment = min(max(adjustment, policy.min_adjustment_percent), policy.max_adjustment_percent)

    effective = round_half_up(Decimal(base_price) * (Decimal(100) + adjustment) / Decimal(100))

    return DynamicPrice(
        base_price=base_price,
        effective_price=max(effective, 0),
        adjustment_percent=adjustment,
        badges=badges,
    )
