"""Decimal parsing for amounts stored at a fixed scale.

Money columns keep two decimal places and commission rates three. Inputs
with more precision are rejected instead of rounded, so a value reads back
from the database exactly as it was accepted.
"""

from decimal import Decimal, InvalidOperation

MONEY_PLACES = 2
RATE_PLACES = 3


def scaled_decimal(raw, places: int, field: str) -> Decimal:
    """Parse ``raw`` as a finite Decimal with at most ``places`` decimal places.

    Raises ValueError for anything else.
    """
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field} must be a number, got {raw!r}") from None
    if not value.is_finite():
        raise ValueError(f"{field} must be a finite number, got {raw!r}")
    step = Decimal(1).scaleb(-places)
    try:
        exact = value.quantize(step) == value
    except InvalidOperation:
        exact = False
    if not exact:
        raise ValueError(f"{field} allows at most {places} decimal places, got {raw}")
    return value


def parse_money(raw, field: str) -> Decimal:
    return scaled_decimal(raw, MONEY_PLACES, field)


def parse_rate(raw, field: str) -> Decimal:
    return scaled_decimal(raw, RATE_PLACES, field)
