"""Order total calculation in currency minor units.

The payment gateway only accepts integer minor-unit amounts (paise for INR), so
the total is rounded once per component and never carried as a float.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from services.storefront.app.models.checkout import CartLine, ShippingSelection
from services.storefront.app.settlement.errors import InvalidAmountError

_MINOR_UNIT_EXPONENTS = {
    "INR": 2,
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "JPY": 0,
    "KRW": 0,
    "KWD": 3,
    "BHD": 3,
    "OMR": 3,
}


@dataclass(frozen=True, slots=True)
class SettlementAmount:
    subtotal_minor: int
    shipping_minor: int
    total_minor: int
    currency: str


def minor_unit_exponent(currency: str) -> int:
    try:
        return _MINOR_UNIT_EXPONENTS[(currency or "").upper()]
    except KeyError:
        raise InvalidAmountError(f"Unsupported currency: {currency!r}") from None


def to_minor_units(value: Decimal, currency: str) -> int:
    """Round a major-unit amount half-up to an integer count of minor units."""

    exponent = minor_unit_exponent(currency)
    try:
        scaled = Decimal(value).scaleb(exponent)
        return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidAmountError(f"Invalid monetary value: {value!r}") from e


def compute_settlement_amount(
    lines: Sequence[CartLine],
    shipping: ShippingSelection | None = None,
    currency: str = "INR",
) -> SettlementAmount:
    currency = (currency or "").upper()
    minor_unit_exponent(currency)

    subtotal = Decimal(0)
    for line in lines:
        quantity = line.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidAmountError(
                f"Quantity for variant {line.variant_id} must be a positive integer, got {quantity!r}"
            )
        price = _checked_price(line.unit_price, what=f"unit price for variant {line.variant_id}")
        subtotal += price * quantity

    shipping_price = Decimal(0)
    if shipping is not None:
        shipping_price = _checked_price(shipping.price, what="shipping price")

    subtotal_minor = to_minor_units(subtotal, currency)
    shipping_minor = to_minor_units(shipping_price, currency)
    total_minor = subtotal_minor + shipping_minor

    if lines and total_minor <= 0:
        raise InvalidAmountError(f"Order total must be positive, got {total_minor} {currency}")

    return SettlementAmount(
        subtotal_minor=subtotal_minor,
        shipping_minor=shipping_minor,
        total_minor=total_minor,
        currency=currency,
    )


def _checked_price(value: Decimal, *, what: str) -> Decimal:
    try:
        price = Decimal(value)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidAmountError(f"Invalid {what}: {value!r}") from e

    if not price.is_finite():
        raise InvalidAmountError(f"Invalid {what}: {value!r}")
    if price < 0:
        raise InvalidAmountError(f"{what.capitalize()} must not be negative, got {price}")
    return price
