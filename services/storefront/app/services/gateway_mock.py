from __future__ import annotations

import os
from uuid import uuid4

from services.storefront.app.models.checkout import PaymentConfirmation
from services.storefront.app.services.gateway_base import (
    GatewayAdapterError,
    GatewayOrderRef,
    GatewayTimeoutError,
)
from services.storefront.app.settlement.signature import sign_payment


class MockPaymentGateway:
    """Deterministic in-process gateway for tests and local dev.

    It can be configured to fail, and it can play the part of the client-side
    payment widget via simulate_payment().
    """

    name = "mock"
    key_id = "rzp_test_mock"

    def __init__(self, signing_secret: str | None = None) -> None:
        self.signing_secret = signing_secret or os.getenv(
            "STOREFRONT_MOCK_GATEWAY_SECRET", "mock_key_secret"
        )
        self.failure: str | None = None
        self.calls: list[dict] = []
        self.orders: dict[str, GatewayOrderRef] = {}

    def configure(self, failure: str | None = None) -> None:
        """Make subsequent create_order calls fail: "timeout", "error", or None to succeed."""
        self.failure = failure

    def create_order(
        self,
        *,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrderRef:
        self.calls.append(
            {
                "method": "create_order",
                "amount_minor": amount_minor,
                "currency": currency,
                "receipt": receipt,
                "notes": dict(notes),
            }
        )

        if self.failure == "timeout":
            raise GatewayTimeoutError(10)
        if self.failure is not None:
            raise GatewayAdapterError(f"Mock gateway failure: {self.failure}")

        ref = GatewayOrderRef(
            gateway_order_id=f"order_{uuid4().hex[:14]}",
            amount_minor=amount_minor,
            currency=currency,
            receipt=receipt,
        )
        self.orders[ref.gateway_order_id] = ref
        return ref

    def simulate_payment(self, gateway_order_id: str) -> PaymentConfirmation:
        payment_id = f"pay_{uuid4().hex[:14]}"
        return PaymentConfirmation(
            gateway_order_id=gateway_order_id,
            gateway_payment_id=payment_id,
            signature=sign_payment(gateway_order_id, payment_id, self.signing_secret),
        )
