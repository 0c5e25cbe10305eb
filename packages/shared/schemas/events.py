"""Shared settlement event schema (v1).

The backend stores an append-only event log of checkout attempts and pending
settlements. Support tooling reads it to reconcile captured payments that never
became commerce orders.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityTypeV1(str, Enum):
    CHECKOUT_ATTEMPT = "CheckoutAttempt"
    PENDING_SETTLEMENT = "PendingSettlement"
    GATEWAY_WEBHOOK = "GatewayWebhook"


class EventTypeV1(str, Enum):
    CHECKOUT_STARTED = "CHECKOUT_STARTED"
    GATEWAY_ORDER_CREATED = "GATEWAY_ORDER_CREATED"
    CHECKOUT_FAILED = "CHECKOUT_FAILED"
    CHECKOUT_SUPERSEDED = "CHECKOUT_SUPERSEDED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PAYMENT_VERIFICATION_FAILED = "PAYMENT_VERIFICATION_FAILED"
    PAYMENT_FAILED_AT_GATEWAY = "PAYMENT_FAILED_AT_GATEWAY"
    STALE_CONFIRMATION_RECEIVED = "STALE_CONFIRMATION_RECEIVED"
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_CREATION_FAILED = "ORDER_CREATION_FAILED"
    SETTLEMENT_RETRY_FAILED = "SETTLEMENT_RETRY_FAILED"
    SETTLEMENT_RETRY_SUCCEEDED = "SETTLEMENT_RETRY_SUCCEEDED"
    SETTLEMENT_DISMISSED = "SETTLEMENT_DISMISSED"
    SETTLEMENT_CONFLICT = "SETTLEMENT_CONFLICT"
    PAYMENT_CAPTURED_WEBHOOK = "PAYMENT_CAPTURED_WEBHOOK"


class EventV1(BaseModel):
    id: str
    client_id: str

    entity_type: EntityTypeV1
    entity_id: str

    event_type: EventTypeV1
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str
