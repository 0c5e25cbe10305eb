from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class GatewayAdapterError(Exception):
    """Base class for payment gateway adapter errors."""


class GatewayConfigError(GatewayAdapterError):
    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Payment gateway is not configured. Missing: {', '.join(missing)}")
        self.missing = missing


class GatewayTimeoutError(GatewayAdapterError):
    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"Payment gateway did not respond within {timeout_s}s")
        self.timeout_s = timeout_s


class GatewayRejectedError(GatewayAdapterError):
    def __init__(self, status: int, detail: str) -> None:
        super().__init__(f"Payment gateway rejected the request (HTTP {status}): {detail}")
        self.status = status
        self.detail = detail


@dataclass(frozen=True, slots=True)
class GatewayOrderRef:
    gateway_order_id: str
    amount_minor: int
    currency: str
    receipt: str


class PaymentGateway(Protocol):
    name: str
    # Public key handed to the client-side payment widget.
    key_id: str
    # Server-only. Used to verify payment confirmations.
    signing_secret: str

    def create_order(
        self,
        *,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrderRef: ...
