from __future__ import annotations

from decimal import Decimal

import pytest

from services.storefront.app.models.checkout import CartLine, ShippingSelection
from services.storefront.app.settlement.amount import (
    compute_settlement_amount,
    minor_unit_exponent,
    to_minor_units,
)
from services.storefront.app.settlement.errors import InvalidAmountError


def _line(price: str, quantity: int = 1, variant_id: str = "v-1") -> CartLine:
    return CartLine(product_id="p-1", variant_id=variant_id, unit_price=Decimal(price), quantity=quantity)


def _shipping(price: str) -> ShippingSelection:
    return ShippingSelection(method_id="standard_delivery", label="Standard Delivery", price=Decimal(price))


def test_total_is_subtotal_plus_shipping_in_paise() -> None:
    amount = compute_settlement_amount(
        [_line("499.00", 2), _line("250.50", 1, variant_id="v-2")],
        _shipping("100.00"),
    )

    assert amount.subtotal_minor == 124850
    assert amount.shipping_minor == 10000
    assert amount.total_minor == 134850
    assert amount.currency == "INR"


def test_rounds_half_up_to_minor_unit() -> None:
    # Banker's rounding would give 10.
    assert compute_settlement_amount([_line("0.105")]).total_minor == 11
    assert to_minor_units(Decimal("1.005"), "INR") == 101
    assert to_minor_units(Decimal("1.004"), "INR") == 100


def test_rounds_sum_of_lines_not_each_line() -> None:
    amount = compute_settlement_amount([_line("0.004", 3)])
    assert amount.subtotal_minor == 1


@pytest.mark.parametrize(
    ("currency", "exponent"),
    [("INR", 2), ("usd", 2), ("JPY", 0), ("KWD", 3)],
)
def test_minor_unit_exponents(currency: str, exponent: int) -> None:
    assert minor_unit_exponent(currency) == exponent


def test_zero_decimal_and_three_decimal_currencies() -> None:
    assert compute_settlement_amount([_line("1500", 2)], currency="JPY").total_minor == 3000
    assert compute_settlement_amount([_line("1.2345")], currency="KWD").total_minor == 1235


def test_empty_cart_is_just_shipping() -> None:
    amount = compute_settlement_amount([], _shipping("100.00"))
    assert amount.subtotal_minor == 0
    assert amount.total_minor == 10000


def test_no_shipping_selection_means_zero_shipping() -> None:
    amount = compute_settlement_amount([_line("10.00")])
    assert amount.shipping_minor == 0
    assert amount.total_minor == 1000


@pytest.mark.parametrize("quantity", [0, -1])
def test_rejects_non_positive_quantity(quantity: int) -> None:
    with pytest.raises(InvalidAmountError, match="positive integer"):
        compute_settlement_amount([_line("10.00", quantity)])


def test_rejects_boolean_quantity() -> None:
    line = CartLine.model_construct(
        product_id="p-1", variant_id="v-1", title="", unit_price=Decimal("10.00"), quantity=True
    )
    with pytest.raises(InvalidAmountError):
        compute_settlement_amount([line])


@pytest.mark.parametrize("price", ["-0.01", "NaN", "Infinity"])
def test_rejects_bad_unit_price(price: str) -> None:
    line = CartLine.model_construct(
        product_id="p-1", variant_id="v-1", title="", unit_price=Decimal(price), quantity=1
    )
    with pytest.raises(InvalidAmountError):
        compute_settlement_amount([line])


def test_rejects_negative_shipping() -> None:
    with pytest.raises(InvalidAmountError, match="must not be negative"):
        compute_settlement_amount([_line("10.00")], _shipping("-5.00"))


def test_rejects_unknown_currency() -> None:
    with pytest.raises(InvalidAmountError, match="Unsupported currency"):
        compute_settlement_amount([_line("10.00")], currency="XYZ")


def test_rejects_zero_total_for_non_empty_cart() -> None:
    with pytest.raises(InvalidAmountError, match="must be positive"):
        compute_settlement_amount([_line("0.00", 3)])


def test_is_deterministic_and_leaves_inputs_alone() -> None:
    lines = [_line("19.99", 3)]
    shipping = _shipping("100.00")
    before = [line.model_dump() for line in lines]

    first = compute_settlement_amount(lines, shipping)
    second = compute_settlement_amount(lines, shipping)

    assert first == second
    assert [line.model_dump() for line in lines] == before
