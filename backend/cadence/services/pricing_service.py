# backend/cadence/services/pricing_service.py
"""
Pricing for the three commercial models.

    SINGLE     price
    RECURRING  price x 0.85
    PACK       price x size x discount(size)

Pack discounts come from a small tier table. Sizes above the largest tier
get the largest discount; any other size takes the nearest tier, and a size
equidistant from two tiers takes the smaller one. Everything is Decimal and
quantized to cents with ROUND_HALF_UP, so the same inputs always produce the
same amount.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union

from ..core.enums import BookingType
from ..core.exceptions import InvalidPriceError, ValidationException

CENTS = Decimal("0.01")

RECURRING_DISCOUNT = Decimal("0.85")

PACK_DISCOUNTS: Dict[int, Decimal] = {
    5: Decimal("0.90"),
    10: Decimal("0.80"),
    20: Decimal("0.75"),
}

Numeric = Union[Decimal, int, float, str]


def _to_decimal(value: Numeric) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps floats like 25.5 from dragging binary noise into the price
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidPriceError(value)


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def pack_discount(pack_size: int) -> Decimal:
    """Discount multiplier for a pack of ``pack_size`` visits."""
    if pack_size in PACK_DISCOUNTS:
        return PACK_DISCOUNTS[pack_size]
    largest = max(PACK_DISCOUNTS)
    if pack_size > largest:
        return PACK_DISCOUNTS[largest]
    nearest = min(PACK_DISCOUNTS, key=lambda tier: (abs(tier - pack_size), tier))
    return PACK_DISCOUNTS[nearest]


def price(
    class_type_price: Numeric,
    booking_type: Union[BookingType, str],
    pack_size: Optional[int] = None,
) -> Decimal:
    """
    Amount to charge for one booking.

    Raises:
        InvalidPriceError: price is zero or negative
        ValidationException: PACK without a usable size
    """
    base = _to_decimal(class_type_price)
    if not base.is_finite() or base <= 0:
        raise InvalidPriceError(class_type_price)

    kind = BookingType(booking_type)
    if kind == BookingType.SINGLE:
        return quantize(base)
    if kind == BookingType.RECURRING:
        return quantize(base * RECURRING_DISCOUNT)

    if pack_size is None or isinstance(pack_size, bool) or int(pack_size) < 1:
        raise ValidationException(
            "Pack size must be at least 1",
            code="INVALID_PACK_SIZE",
            details={"pack_size": pack_size},
        )
    size = int(pack_size)
    return quantize(base * size * pack_discount(size))


def price_selection(class_type_price: Numeric, selection: Any) -> Decimal:
    """Price a booking selection (SingleSelection, RecurringSelection or PackSelection)."""
    return price(
        class_type_price,
        selection.booking_type,
        getattr(selection, "pack_size", None),
    )


def to_minor_units(amount: Decimal) -> int:
    """Integer cents, as Stripe expects them."""
    return int((quantize(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
