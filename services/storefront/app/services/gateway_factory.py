from __future__ import annotations

import os

from services.storefront.app.services.gateway_base import GatewayConfigError, PaymentGateway
from services.storefront.app.services.gateway_mock import MockPaymentGateway

_current: PaymentGateway | None = None
_current_mode: str | None = None


def get_payment_gateway() -> PaymentGateway:
    """Select a gateway adapter based on env vars.

    Defaults to the mock adapter so tests and local dev are deterministic unless explicitly
    configured otherwise. The instance is cached per mode; set_payment_gateway() overrides it.
    """

    global _current, _current_mode

    mode = os.getenv("STOREFRONT_GATEWAY_ADAPTER", "mock").strip().lower()

    if _current is not None and (_current_mode is None or _current_mode == mode):
        return _current

    if mode == "mock":
        gateway: PaymentGateway = MockPaymentGateway()
    elif mode == "razorpay":
        from services.storefront.app.services.gateway_razorpay import RazorpayGateway

        try:
            gateway = RazorpayGateway.from_env()
        except GatewayConfigError as e:
            raise ValueError(str(e)) from e
    else:
        raise ValueError(f"Unknown STOREFRONT_GATEWAY_ADAPTER={mode!r}. Expected mock or razorpay.")

    _current = gateway
    _current_mode = mode
    return gateway


def set_payment_gateway(gateway: PaymentGateway) -> None:
    """Override the active gateway regardless of env (useful for tests)."""
    global _current, _current_mode
    _current = gateway
    _current_mode = None


def reset_payment_gateway() -> None:
    global _current, _current_mode
    _current = None
    _current_mode = None
