"""Shared checkout card payload schema (v1).

The storefront checkout page renders these payloads. Every settlement outcome,
including failures, comes back as a card so the client always has a message to
show and a set of follow-up actions.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class CardTypeV1(str, Enum):
    PAYMENT = "PAYMENT"
    DONE = "DONE"
    FAILED = "FAILED"
    PENDING_SETTLEMENT = "PENDING_SETTLEMENT"
    ABANDONED = "ABANDONED"
    STATUS = "STATUS"


class CardActionTypeV1(str, Enum):
    PAY = "PAY"
    RETRY = "RETRY"
    DISMISS = "DISMISS"
    RESTART = "RESTART"
    CONTACT_SUPPORT = "CONTACT_SUPPORT"


class CardActionV1(BaseModel):
    type: CardActionTypeV1
    label: str
    payload: dict[str, Any] = Field(default_factory=dict)


class CheckoutCardV1(BaseModel):
    version: str = "1"
    type: CardTypeV1

    title: str
    summary: str

    # Server-side IDs to support follow-up actions.
    client_id: str
    attempt_id: str | None = None
    state: str | None = None

    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None

    amount_minor: int | None = None
    currency: str | None = None

    # Stable machine-readable failure code (e.g. ORDER_CREATION_FAILED).
    error_code: str | None = None

    # State-specific rendering payload.
    body: dict[str, Any] = Field(default_factory=dict)

    actions: list[CardActionV1] = Field(default_factory=list, max_length=4)
    warnings: list[str] = Field(default_factory=list, max_length=8)
