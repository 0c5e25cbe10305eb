from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from services.storefront.app.models.checkout import CartLine, ContactInfo, ShippingAddress, ShippingSelection
from services.storefront.app.settlement.amount import compute_settlement_amount
from services.storefront.app.settlement.errors import InvalidTransitionError
from services.storefront.app.services.gateway_base import GatewayOrderRef
from services.storefront.app.settlement.state import CartSnapshot, CheckoutAttempt, CheckoutState
from services.storefront.app.settlement.store import CheckoutAttemptStore


def _snapshot(quantity: int = 1, price: str = "10.00") -> CartSnapshot:
    lines = [CartLine(product_id="p", variant_id="v", unit_price=Decimal(price), quantity=quantity)]
    shipping = ShippingSelection(
        method_id="standard_delivery", label="Standard Delivery", price=Decimal("100.00"), postal_code="560001"
    )
    return CartSnapshot.take(
        lines=lines,
        shipping=shipping,
        shipping_address=ShippingAddress(
            first_name="A", address1="1 Road", city="Pune", zip="560001", phone="9000000000"
        ),
        contact=ContactInfo(email="a@example.com"),
        amount=compute_settlement_amount(lines, shipping),
    )


def test_attempt_follows_happy_path() -> None:
    attempt = CheckoutAttempt(attempt_id="a-1", client_id="c-1")
    for state in (
        CheckoutState.AMOUNT_COMPUTED,
        CheckoutState.GATEWAY_ORDER_CREATED,
        CheckoutState.AWAITING_CONFIRMATION,
        CheckoutState.CONFIRMATION_RECEIVED,
        CheckoutState.SIGNATURE_VERIFIED,
        CheckoutState.ORDER_CREATED,
    ):
        attempt.transition(state)

    assert attempt.is_terminal
    assert attempt.history[0] == "IDLE"
    assert attempt.history[-1] == "ORDER_CREATED"


@pytest.mark.parametrize(
    ("path", "target"),
    [
        ([], CheckoutState.ORDER_CREATED),
        ([], CheckoutState.AWAITING_CONFIRMATION),
        ([CheckoutState.AMOUNT_COMPUTED], CheckoutState.SIGNATURE_VERIFIED),
        (
            [
                CheckoutState.AMOUNT_COMPUTED,
                CheckoutState.GATEWAY_ORDER_CREATED,
                CheckoutState.AWAITING_CONFIRMATION,
                CheckoutState.CONFIRMATION_RECEIVED,
                CheckoutState.SIGNATURE_VERIFIED,
            ],
            CheckoutState.FAILED,
        ),
        ([CheckoutState.FAILED], CheckoutState.AMOUNT_COMPUTED),
    ],
)
def test_illegal_transitions_raise(path: list[CheckoutState], target: CheckoutState) -> None:
    attempt = CheckoutAttempt(attempt_id="a-1", client_id="c-1")
    for state in path:
        attempt.transition(state)

    with pytest.raises(InvalidTransitionError):
        attempt.transition(target)


def test_order_creation_failure_can_retry_or_be_abandoned() -> None:
    attempt = CheckoutAttempt(attempt_id="a-1", client_id="c-1")
    for state in (
        CheckoutState.AMOUNT_COMPUTED,
        CheckoutState.GATEWAY_ORDER_CREATED,
        CheckoutState.AWAITING_CONFIRMATION,
        CheckoutState.CONFIRMATION_RECEIVED,
        CheckoutState.SIGNATURE_VERIFIED,
        CheckoutState.ORDER_CREATION_FAILED,
        CheckoutState.ORDER_CREATION_FAILED,
        CheckoutState.ABANDONED,
    ):
        attempt.transition(state)

    assert attempt.state is CheckoutState.ABANDONED
    with pytest.raises(InvalidTransitionError):
        attempt.transition(CheckoutState.ORDER_CREATED)


def test_snapshot_round_trips_through_json() -> None:
    snapshot = _snapshot(quantity=3)
    restored = CartSnapshot.from_json(snapshot.to_json())

    assert restored == snapshot
    assert restored.fingerprint == snapshot.fingerprint


def test_fingerprint_ignores_price_formatting_but_not_quantity() -> None:
    assert _snapshot(price="10.00").fingerprint == _snapshot(price="10").fingerprint
    assert _snapshot(quantity=1).fingerprint != _snapshot(quantity=2).fingerprint


def _attempt(attempt_id: str, *, age: timedelta = timedelta(0), failed: bool = False) -> CheckoutAttempt:
    attempt = CheckoutAttempt(attempt_id=attempt_id, client_id="c-1")
    if failed:
        attempt.fail("GATEWAY_UNAVAILABLE", "down")
    attempt.updated_at = datetime.now(UTC) - age
    return attempt


def test_attempt_store_drops_expired_attempts() -> None:
    store = CheckoutAttemptStore(ttl=timedelta(hours=1))
    old = _attempt("old", age=timedelta(hours=2))
    old.gateway_order = GatewayOrderRef(gateway_order_id="order_old", amount_minor=100, currency="INR", receipt="r")
    store.save(_attempt("fresh"))
    store._attempts["old"] = old

    assert store.get("old") is None
    assert store.find_by_gateway_order("order_old") is None
    assert store.get("fresh") is not None

    store._attempts["old"] = old
    store.save(_attempt("newer"))
    assert len(store) == 2


def test_attempt_store_evicts_finished_attempts_first_when_full() -> None:
    store = CheckoutAttemptStore(max_attempts=2)
    store.save(_attempt("live", age=timedelta(minutes=10)))
    store.save(_attempt("failed", age=timedelta(minutes=1), failed=True))
    store.save(_attempt("latest"))

    assert len(store) == 2
    assert store.get("failed") is None
    assert store.get("live") is not None
    assert store.get("latest") is not None


def test_attempt_store_finds_by_gateway_order() -> None:
    store = CheckoutAttemptStore()
    attempt = _attempt("a-1")
    store.save(attempt)
    attempt.gateway_order = GatewayOrderRef(gateway_order_id="order_1", amount_minor=100, currency="INR", receipt="r")

    assert store.find_by_gateway_order("order_1") is attempt
    assert store.find_by_gateway_order("order_2") is None
