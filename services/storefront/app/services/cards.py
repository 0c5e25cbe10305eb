from __future__ import annotations

from decimal import Decimal

from packages.shared.schemas.card_v1 import (
    CardActionTypeV1,
    CardActionV1,
    CardTypeV1,
    CheckoutCardV1,
)
from services.storefront.app.services.gateway_base import PaymentGateway
from services.storefront.app.settlement.amount import minor_unit_exponent
from services.storefront.app.settlement.orchestrator import SettlementResult
from services.storefront.app.settlement.state import CheckoutAttempt, CheckoutState
from services.storefront.app.settlement.store import PendingSettlement

_CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥"}


def format_amount(amount_minor: int, currency: str) -> str:
    exponent = minor_unit_exponent(currency)
    major = Decimal(amount_minor).scaleb(-exponent)
    symbol = _CURRENCY_SYMBOLS.get(currency.upper())
    if symbol is None:
        return f"{currency.upper()} {major:,.{exponent}f}"
    return f"{symbol}{major:,.{exponent}f}"


def payment_card(attempt: CheckoutAttempt, gateway: PaymentGateway) -> CheckoutCardV1:
    assert attempt.snapshot is not None and attempt.gateway_order is not None

    snapshot = attempt.snapshot
    amount = snapshot.amount
    order = attempt.gateway_order

    return CheckoutCardV1(
        type=CardTypeV1.PAYMENT,
        title="Complete your payment",
        summary=f"Pay {format_amount(amount.total_minor, amount.currency)} to place your order.",
        client_id=attempt.client_id,
        attempt_id=attempt.attempt_id,
        state=attempt.state.value,
        gateway_order_id=order.gateway_order_id,
        amount_minor=amount.total_minor,
        currency=amount.currency,
        body={
            # Everything the client-side payment widget needs, and nothing secret.
            "gateway": gateway.name,
            "key_id": gateway.key_id,
            "gateway_order_id": order.gateway_order_id,
            "amount_minor": order.amount_minor,
            "currency": order.currency,
            "subtotal_minor": amount.subtotal_minor,
            "shipping_minor": amount.shipping_minor,
            "prefill": {
                "name": snapshot.contact.full_name
                or f"{snapshot.shipping_address.first_name} {snapshot.shipping_address.last_name}".strip(),
                "email": snapshot.contact.email,
                "contact": snapshot.contact.phone or snapshot.shipping_address.phone,
            },
            "shipping": (
                {
                    "label": snapshot.shipping.label,
                    "estimated_delivery_label": snapshot.shipping.estimated_delivery_label,
                }
                if snapshot.shipping is not None
                else None
            ),
        },
        actions=[
            CardActionV1(
                type=CardActionTypeV1.PAY,
                label=f"Pay {format_amount(amount.total_minor, amount.currency)}",
                payload={"attempt_id": attempt.attempt_id, "gateway_order_id": order.gateway_order_id},
            )
        ],
    )


def done_card(result: SettlementResult, gateway_order_id: str | None = None) -> CheckoutCardV1:
    return CheckoutCardV1(
        type=CardTypeV1.DONE,
        title="Order placed",
        summary=f"Order #{result.order.order_number} is confirmed.",
        client_id=result.client_id,
        attempt_id=result.attempt_id or None,
        state=CheckoutState.ORDER_CREATED.value,
        gateway_order_id=gateway_order_id,
        gateway_payment_id=result.gateway_payment_id,
        amount_minor=result.total_minor,
        currency=result.currency,
        body={
            "order_id": result.order.order_id,
            "order_number": result.order.order_number,
            "confirmation_url": result.order.confirmation_url,
            "clear_cart": result.clear_cart,
        },
    )


def failed_card(
    *,
    client_id: str,
    error_code: str,
    message: str,
    attempt: CheckoutAttempt | None = None,
    gateway_payment_id: str | None = None,
) -> CheckoutCardV1:
    actions = [CardActionV1(type=CardActionTypeV1.RESTART, label="Try again", payload={})]
    if gateway_payment_id:
        actions.append(
            CardActionV1(
                type=CardActionTypeV1.CONTACT_SUPPORT,
                label="Contact support",
                payload={"gateway_payment_id": gateway_payment_id},
            )
        )

    amount = attempt.snapshot.amount if attempt is not None and attempt.snapshot is not None else None
    return CheckoutCardV1(
        type=CardTypeV1.FAILED,
        title="Payment not completed",
        summary=message,
        client_id=client_id,
        attempt_id=attempt.attempt_id if attempt else None,
        state=attempt.state.value if attempt else None,
        gateway_order_id=attempt.gateway_order.gateway_order_id if attempt and attempt.gateway_order else None,
        gateway_payment_id=gateway_payment_id,
        amount_minor=amount.total_minor if amount else None,
        currency=amount.currency if amount else None,
        error_code=error_code,
        body={"clear_cart": False},
        actions=actions,
    )


def pending_card(
    pending: PendingSettlement,
    *,
    error_code: str = "ORDER_CREATION_FAILED",
    unsettled_payment_id: str | None = None,
) -> CheckoutCardV1:
    amount = pending.snapshot.amount
    payment_id = pending.confirmation.gateway_payment_id

    warnings = []
    if unsettled_payment_id:
        warnings.append(
            f"Payment {unsettled_payment_id} was also taken but its order could not be placed. "
            "Contact support with both payment IDs."
        )
    if pending.retry_count >= 3:
        warnings.append("Several retries have failed. Support can complete this order manually.")

    return CheckoutCardV1(
        type=CardTypeV1.PENDING_SETTLEMENT,
        title="Your payment went through, but the order is not placed yet",
        summary=f"Payment succeeded but order failed. Contact support with ID: {payment_id}",
        client_id=pending.client_id,
        attempt_id=pending.attempt_id,
        state=CheckoutState.ORDER_CREATION_FAILED.value,
        gateway_order_id=pending.confirmation.gateway_order_id,
        gateway_payment_id=payment_id,
        amount_minor=amount.total_minor,
        currency=amount.currency,
        error_code=error_code,
        body={
            "retry_count": pending.retry_count,
            "last_error": pending.last_error,
            "created_at": pending.created_at.isoformat(),
            "email": pending.snapshot.contact.email,
            "items": [
                {"title": line.title, "variant_id": line.variant_id, "quantity": line.quantity}
                for line in pending.snapshot.lines
            ],
            "clear_cart": False,
        },
        actions=[
            CardActionV1(type=CardActionTypeV1.RETRY, label="Retry order", payload={"client_id": pending.client_id}),
            CardActionV1(type=CardActionTypeV1.DISMISS, label="Dismiss", payload={"client_id": pending.client_id}),
            CardActionV1(
                type=CardActionTypeV1.CONTACT_SUPPORT,
                label="Contact support",
                payload={"gateway_payment_id": payment_id},
            ),
        ],
        warnings=warnings,
    )


def abandoned_card(pending: PendingSettlement) -> CheckoutCardV1:
    amount = pending.snapshot.amount
    payment_id = pending.confirmation.gateway_payment_id
    return CheckoutCardV1(
        type=CardTypeV1.ABANDONED,
        title="Order not placed",
        summary=(
            f"Your payment of {format_amount(amount.total_minor, amount.currency)} is not linked to an order. "
            f"Contact support with ID: {payment_id}"
        ),
        client_id=pending.client_id,
        attempt_id=pending.attempt_id,
        state=CheckoutState.ABANDONED.value,
        gateway_order_id=pending.confirmation.gateway_order_id,
        gateway_payment_id=payment_id,
        amount_minor=amount.total_minor,
        currency=amount.currency,
        actions=[
            CardActionV1(
                type=CardActionTypeV1.CONTACT_SUPPORT,
                label="Contact support",
                payload={"gateway_payment_id": payment_id},
            )
        ],
    )


def attempt_card(
    attempt: CheckoutAttempt,
    gateway: PaymentGateway,
    pending: PendingSettlement | None = None,
) -> CheckoutCardV1:
    """Card for whatever state an attempt is in right now."""

    if attempt.state is CheckoutState.AWAITING_CONFIRMATION:
        return payment_card(attempt, gateway)

    if attempt.state is CheckoutState.ORDER_CREATED and attempt.commerce_order is not None:
        assert attempt.snapshot is not None and attempt.confirmation is not None
        result = SettlementResult(
            client_id=attempt.client_id,
            attempt_id=attempt.attempt_id,
            order=attempt.commerce_order,
            gateway_payment_id=attempt.confirmation.gateway_payment_id,
            total_minor=attempt.snapshot.amount.total_minor,
            currency=attempt.snapshot.amount.currency,
        )
        return done_card(result, gateway_order_id=attempt.confirmation.gateway_order_id)

    if attempt.state is CheckoutState.ORDER_CREATION_FAILED and pending is not None:
        return pending_card(pending)

    if attempt.state is CheckoutState.FAILED:
        return failed_card(
            client_id=attempt.client_id,
            error_code=attempt.failure_code or "FAILED",
            message=attempt.failure_message or "Checkout failed",
            attempt=attempt,
            gateway_payment_id=attempt.confirmation.gateway_payment_id if attempt.confirmation else None,
        )

    return CheckoutCardV1(
        type=CardTypeV1.ABANDONED if attempt.state is CheckoutState.ABANDONED else CardTypeV1.STATUS,
        title="Checkout status",
        summary=f"Checkout is {attempt.state.value.replace('_', ' ').lower()}.",
        client_id=attempt.client_id,
        attempt_id=attempt.attempt_id,
        state=attempt.state.value,
        gateway_order_id=attempt.gateway_order.gateway_order_id if attempt.gateway_order else None,
        gateway_payment_id=attempt.confirmation.gateway_payment_id if attempt.confirmation else None,
        amount_minor=attempt.snapshot.amount.total_minor if attempt.snapshot else None,
        currency=attempt.snapshot.amount.currency if attempt.snapshot else None,
        body={"history": list(attempt.history)},
    )
