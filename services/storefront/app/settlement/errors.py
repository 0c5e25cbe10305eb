from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from services.storefront.app.settlement.store import PendingSettlement


class SettlementError(Exception):
    """Base class for checkout settlement errors."""

    code = "SETTLEMENT_ERROR"


class InvalidAmountError(SettlementError):
    code = "INVALID_AMOUNT"


class GatewayUnavailableError(SettlementError):
    code = "GATEWAY_UNAVAILABLE"


class PaymentFailedAtGatewayError(SettlementError):
    code = "PAYMENT_FAILED_AT_GATEWAY"

    def __init__(self, description: str, gateway_payment_id: str | None = None) -> None:
        super().__init__(f"Payment failed: {description}")
        self.description = description
        self.gateway_payment_id = gateway_payment_id


class PaymentVerificationFailedError(SettlementError):
    code = "PAYMENT_VERIFICATION_FAILED"

    def __init__(self, gateway_payment_id: str) -> None:
        super().__init__(
            "Payment verification failed. If you were charged, contact support with "
            f"payment ID: {gateway_payment_id or 'unknown'}"
        )
        self.gateway_payment_id = gateway_payment_id


class OrderCreationFailedError(SettlementError):
    code = "ORDER_CREATION_FAILED"

    def __init__(self, pending: PendingSettlement, reason: str) -> None:
        super().__init__(
            "Payment succeeded but the order could not be completed. "
            f"Retry, or contact support with payment ID: {pending.confirmation.gateway_payment_id}"
        )
        self.pending = pending
        self.reason = reason


class CheckoutAttemptNotFoundError(SettlementError):
    code = "ATTEMPT_NOT_FOUND"

    def __init__(self, attempt_id: str) -> None:
        super().__init__(f"Checkout attempt not found: {attempt_id}")
        self.attempt_id = attempt_id


class InvalidTransitionError(SettlementError):
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot transition checkout from {current} to {target}")
        self.current = current
        self.target = target


class StaleGatewayOrderError(SettlementError):
    code = "STALE_GATEWAY_ORDER"

    def __init__(self, gateway_order_id: str, gateway_payment_id: str | None = None) -> None:
        super().__init__(
            f"Gateway order {gateway_order_id} was replaced after the cart changed. "
            "Start checkout again."
        )
        self.gateway_order_id = gateway_order_id
        self.gateway_payment_id = gateway_payment_id


class PendingSettlementExistsError(SettlementError):
    code = "PENDING_SETTLEMENT_EXISTS"

    def __init__(self, pending: PendingSettlement, *, unsettled_payment_id: str | None = None) -> None:
        super().__init__(
            "A previous payment still needs to be completed before starting a new checkout. "
            f"Payment ID: {pending.confirmation.gateway_payment_id}"
        )
        self.pending = pending
        # Set when a second captured payment failed to become an order while this one was pending.
        self.unsettled_payment_id = unsettled_payment_id


class NoPendingSettlementError(SettlementError):
    code = "NO_PENDING_SETTLEMENT"

    def __init__(self, client_id: str) -> None:
        super().__init__(f"No pending settlement for client {client_id}")
        self.client_id = client_id


class RetryInFlightError(SettlementError):
    code = "RETRY_IN_FLIGHT"

    def __init__(self, client_id: str) -> None:
        super().__init__("A retry for this payment is already in progress")
        self.client_id = client_id
