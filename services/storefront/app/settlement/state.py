"""Checkout attempt state machine and the snapshot an attempt is pinned to."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from services.storefront.app.models.checkout import (
    CartLine,
    ContactInfo,
    PaymentConfirmation,
    ShippingAddress,
    ShippingSelection,
)
from services.storefront.app.services.commerce_base import CommerceOrder
from services.storefront.app.services.gateway_base import GatewayOrderRef
from services.storefront.app.settlement.amount import SettlementAmount
from services.storefront.app.settlement.errors import InvalidTransitionError


class CheckoutState(Enum):
    IDLE = "IDLE"
    AMOUNT_COMPUTED = "AMOUNT_COMPUTED"
    GATEWAY_ORDER_CREATED = "GATEWAY_ORDER_CREATED"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    CONFIRMATION_RECEIVED = "CONFIRMATION_RECEIVED"
    SIGNATURE_VERIFIED = "SIGNATURE_VERIFIED"
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_CREATION_FAILED = "ORDER_CREATION_FAILED"
    FAILED = "FAILED"
    ABANDONED = "ABANDONED"


_VALID_TRANSITIONS = {
    CheckoutState.IDLE: {CheckoutState.AMOUNT_COMPUTED, CheckoutState.FAILED},
    CheckoutState.AMOUNT_COMPUTED: {CheckoutState.GATEWAY_ORDER_CREATED, CheckoutState.FAILED},
    CheckoutState.GATEWAY_ORDER_CREATED: {CheckoutState.AWAITING_CONFIRMATION, CheckoutState.FAILED},
    CheckoutState.AWAITING_CONFIRMATION: {CheckoutState.CONFIRMATION_RECEIVED, CheckoutState.FAILED},
    # Unverified confirmations are treated as if no payment happened.
    CheckoutState.CONFIRMATION_RECEIVED: {CheckoutState.SIGNATURE_VERIFIED, CheckoutState.FAILED},
    CheckoutState.SIGNATURE_VERIFIED: {
        CheckoutState.ORDER_CREATED,
        CheckoutState.ORDER_CREATION_FAILED,
    },
    CheckoutState.ORDER_CREATION_FAILED: {
        CheckoutState.ORDER_CREATED,
        CheckoutState.ORDER_CREATION_FAILED,
        CheckoutState.ABANDONED,
    },
    CheckoutState.ORDER_CREATED: set(),  # Terminal
    CheckoutState.FAILED: set(),  # Terminal
    CheckoutState.ABANDONED: set(),  # Terminal
}

TERMINAL_STATES = frozenset(
    {CheckoutState.ORDER_CREATED, CheckoutState.FAILED, CheckoutState.ABANDONED}
)


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    """Everything a settlement needs, copied once so later cart edits cannot leak in."""

    lines: tuple[CartLine, ...]
    shipping: ShippingSelection | None
    shipping_address: ShippingAddress
    contact: ContactInfo
    amount: SettlementAmount

    @classmethod
    def take(
        cls,
        *,
        lines: list[CartLine],
        shipping: ShippingSelection | None,
        shipping_address: ShippingAddress,
        contact: ContactInfo,
        amount: SettlementAmount,
    ) -> "CartSnapshot":
        return cls(
            lines=tuple(line.model_copy(deep=True) for line in lines),
            shipping=shipping.model_copy(deep=True) if shipping is not None else None,
            shipping_address=shipping_address.model_copy(deep=True),
            contact=contact.model_copy(deep=True),
            amount=amount,
        )

    @property
    def fingerprint(self) -> str:
        return snapshot_fingerprint(
            lines=self.lines,
            shipping=self.shipping,
            shipping_address=self.shipping_address,
            contact=self.contact,
            currency=self.amount.currency,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "lines": [line.model_dump(mode="json") for line in self.lines],
            "shipping": self.shipping.model_dump(mode="json") if self.shipping else None,
            "shipping_address": self.shipping_address.model_dump(mode="json"),
            "contact": self.contact.model_dump(mode="json"),
            "amount": {
                "subtotal_minor": self.amount.subtotal_minor,
                "shipping_minor": self.amount.shipping_minor,
                "total_minor": self.amount.total_minor,
                "currency": self.amount.currency,
            },
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "CartSnapshot":
        shipping = data.get("shipping")
        return cls(
            lines=tuple(CartLine.model_validate(line) for line in data.get("lines") or []),
            shipping=ShippingSelection.model_validate(shipping) if shipping else None,
            shipping_address=ShippingAddress.model_validate(data["shipping_address"]),
            contact=ContactInfo.model_validate(data["contact"]),
            amount=SettlementAmount(**data["amount"]),
        )


def snapshot_fingerprint(
    *,
    lines: tuple[CartLine, ...] | list[CartLine],
    shipping: ShippingSelection | None,
    shipping_address: ShippingAddress,
    contact: ContactInfo,
    currency: str,
) -> str:
    canonical = {
        "currency": currency.upper(),
        "lines": [
            [line.product_id, line.variant_id, _canonical_decimal(line.unit_price), line.quantity]
            for line in lines
        ],
        "shipping": (
            [shipping.method_id, _canonical_decimal(shipping.price), shipping.code, shipping.postal_code]
            if shipping is not None
            else None
        ),
        "shipping_address": shipping_address.model_dump(mode="json"),
        "email": contact.email,
    }
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _canonical_decimal(value: Decimal) -> str:
    return format(Decimal(value).normalize(), "f")


@dataclass
class CheckoutAttempt:
    attempt_id: str
    client_id: str
    state: CheckoutState = CheckoutState.IDLE

    snapshot: CartSnapshot | None = None
    gateway_order: GatewayOrderRef | None = None
    confirmation: PaymentConfirmation | None = None
    commerce_order: CommerceOrder | None = None

    failure_code: str | None = None
    failure_message: str | None = None

    history: list[str] = field(default_factory=lambda: [CheckoutState.IDLE.value])
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def transition(self, target: CheckoutState) -> None:
        if target not in _VALID_TRANSITIONS.get(self.state, set()):
            raise InvalidTransitionError(self.state.value, target.value)
        self.state = target
        self.history.append(target.value)
        self.updated_at = datetime.now(UTC)

    def fail(self, code: str, message: str) -> None:
        self.transition(CheckoutState.FAILED)
        self.failure_code = code
        self.failure_message = message

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
