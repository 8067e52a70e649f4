"""Helpers shared by the service layer."""

from uuid import UUID

from ..core.exceptions import ValidationError


def parse_uuid(value: str | UUID, field_name: str) -> UUID:
    """Parse an identifier from a request, raising ValidationError when malformed."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(
            detail=f"'{value}' is not a valid {field_name}",
            errors={field_name: "must be a UUID"},
        )


def format_inr(amount: int) -> str:
    """Format whole rupees with Indian digit grouping, e.g. 1234567 -> ₹12,34,567."""
    sign = "-" if amount < 0 else ""
    digits = str(abs(int(amount)))
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    return f"{sign}₹{digits}"
