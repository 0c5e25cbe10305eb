from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from services.storefront.app.models.checkout import ShippingAddress


class CommerceAdapterError(Exception):
    """Base class for commerce backend adapter errors."""


class CommerceConfigError(CommerceAdapterError):
    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Commerce backend is not configured. Missing: {', '.join(missing)}")
        self.missing = missing


class CommerceTimeoutError(CommerceAdapterError):
    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"Commerce backend did not respond within {timeout_s}s")
        self.timeout_s = timeout_s


class CommerceRejectedError(CommerceAdapterError):
    def __init__(self, status: int, detail: str) -> None:
        super().__init__(f"Commerce backend rejected the order (HTTP {status}): {detail}")
        self.status = status
        self.detail = detail


@dataclass(frozen=True, slots=True)
class CommerceLineItem:
    variant_id: str
    quantity: int
    # Sent for audit only; the backend prices the variant itself.
    unit_price: Decimal | None = None


@dataclass(frozen=True, slots=True)
class CommerceShippingLine:
    title: str
    price: Decimal
    code: str


@dataclass(frozen=True, slots=True)
class PaymentMarker:
    gateway: str
    gateway_reference: str
    status: str = "paid"


@dataclass(frozen=True, slots=True)
class CommerceOrderRequest:
    email: str
    line_items: tuple[CommerceLineItem, ...]
    shipping_address: ShippingAddress
    shipping_line: CommerceShippingLine | None
    payment: PaymentMarker
    total_minor: int
    currency: str
    tags: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class CommerceOrder:
    order_id: str
    order_number: str
    confirmation_url: str | None = None


class CommerceBackend(Protocol):
    """Creates paid orders.

    Contract: creating an order twice with the same payment.gateway_reference must not
    produce two orders.
    """

    name: str

    def create_order(self, request: CommerceOrderRequest) -> CommerceOrder: ...
