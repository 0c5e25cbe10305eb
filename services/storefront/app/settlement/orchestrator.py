"""Checkout settlement across the payment gateway and the commerce backend.

The two systems share no transaction. The dangerous window is after the gateway
has captured money and before the commerce backend has recorded the order: any
failure there is persisted as a PendingSettlement so it can be retried, and is
never dropped.

Flow:
    start_checkout:   IDLE → AMOUNT_COMPUTED → GATEWAY_ORDER_CREATED → AWAITING_CONFIRMATION
    complete_payment: → CONFIRMATION_RECEIVED → SIGNATURE_VERIFIED → ORDER_CREATED
                                                                  → ORDER_CREATION_FAILED
    fail_payment:     AWAITING_CONFIRMATION → FAILED
    retry_pending:    ORDER_CREATION_FAILED → ORDER_CREATED | ORDER_CREATION_FAILED
    dismiss_pending:  ORDER_CREATION_FAILED → ABANDONED
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import NoReturn
from uuid import uuid4

from sqlalchemy.orm import Session

from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.storefront.app.db.models import EventLog
from services.storefront.app.models.checkout import (
    CheckoutRequest,
    PaymentConfirmation,
)
from services.storefront.app.services.commerce_base import (
    CommerceAdapterError,
    CommerceBackend,
    CommerceLineItem,
    CommerceOrder,
    CommerceOrderRequest,
    CommerceShippingLine,
    PaymentMarker,
)
from services.storefront.app.services.gateway_base import GatewayAdapterError, PaymentGateway
from services.storefront.app.settlement.amount import compute_settlement_amount
from services.storefront.app.settlement.errors import (
    CheckoutAttemptNotFoundError,
    GatewayUnavailableError,
    InvalidAmountError,
    InvalidTransitionError,
    NoPendingSettlementError,
    OrderCreationFailedError,
    PaymentFailedAtGatewayError,
    PaymentVerificationFailedError,
    PendingSettlementExistsError,
    RetryInFlightError,
    StaleGatewayOrderError,
)
from services.storefront.app.settlement.signature import verify_payment_signature
from services.storefront.app.settlement.state import (
    CartSnapshot,
    CheckoutAttempt,
    CheckoutState,
    snapshot_fingerprint,
)
from services.storefront.app.settlement.store import (
    CheckoutAttemptStore,
    PendingSettlement,
    PendingSettlementStore,
    SqlPendingSettlementStore,
    attempt_store,
)
from services.storefront.app.utils.logging import get_logger

logger = get_logger(__name__)

STALE_GATEWAY_ORDER = "STALE_GATEWAY_ORDER"


@dataclass(frozen=True, slots=True)
class SettlementResult:
    client_id: str
    attempt_id: str
    order: CommerceOrder
    gateway_payment_id: str
    total_minor: int
    currency: str
    # The client empties its cart only on terminal success.
    clear_cart: bool = True


class SettlementOrchestrator:
    def __init__(
        self,
        db: Session,
        *,
        gateway: PaymentGateway,
        commerce: CommerceBackend,
        attempts: CheckoutAttemptStore | None = None,
        pending_store: PendingSettlementStore | None = None,
    ) -> None:
        self._db = db
        self._gateway = gateway
        self._commerce = commerce
        self._attempts = attempts if attempts is not None else attempt_store
        self._pending = pending_store if pending_store is not None else SqlPendingSettlementStore(db)

    @property
    def gateway(self) -> PaymentGateway:
        return self._gateway

    def get_attempt(self, attempt_id: str) -> CheckoutAttempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise CheckoutAttemptNotFoundError(attempt_id)
        return attempt

    def get_pending(self, client_id: str) -> PendingSettlement | None:
        return self._pending.get(client_id)

    def start_checkout(self, request: CheckoutRequest, currency: str = "INR") -> CheckoutAttempt:
        pending = self._pending.get(request.client_id)
        if pending is not None:
            raise PendingSettlementExistsError(pending)

        if request.attempt_id:
            previous = self._attempts.get(request.attempt_id)
            if (
                previous is not None
                and previous.client_id == request.client_id
                and previous.state is CheckoutState.AWAITING_CONFIRMATION
                and previous.snapshot is not None
            ):
                fingerprint = snapshot_fingerprint(
                    lines=request.cart,
                    shipping=request.shipping_selection,
                    shipping_address=request.shipping_address,
                    contact=request.contact,
                    currency=currency,
                )
                if fingerprint == previous.snapshot.fingerprint:
                    return previous
                self._supersede(previous)

        attempt = CheckoutAttempt(attempt_id=uuid4().hex, client_id=request.client_id)

        snapshot = self._compute_amount(attempt, request, currency)
        attempt.snapshot = snapshot
        attempt.transition(CheckoutState.AMOUNT_COMPUTED)
        self._attempts.save(attempt)

        self._log_event(
            client_id=attempt.client_id,
            entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
            entity_id=attempt.attempt_id,
            event_type=EventTypeV1.CHECKOUT_STARTED,
            payload={
                "total_minor": snapshot.amount.total_minor,
                "currency": snapshot.amount.currency,
                "line_count": len(snapshot.lines),
            },
        )

        self._create_gateway_order(attempt, snapshot)
        attempt.transition(CheckoutState.AWAITING_CONFIRMATION)
        return attempt

    def _compute_amount(
        self, attempt: CheckoutAttempt, request: CheckoutRequest, currency: str
    ) -> CartSnapshot:
        try:
            if not request.cart:
                raise InvalidAmountError("Your cart is empty")

            shipping = request.shipping_selection
            if (
                shipping is not None
                and shipping.postal_code
                and shipping.postal_code.strip() != request.shipping_address.zip.strip()
            ):
                raise InvalidAmountError(
                    "Shipping was quoted for a different address. Please choose a shipping option again."
                )

            amount = compute_settlement_amount(request.cart, shipping, currency)
        except InvalidAmountError as e:
            attempt.fail(InvalidAmountError.code, str(e))
            logger.info(
                "Checkout rejected before payment",
                client_id=attempt.client_id,
                reason=str(e),
            )
            raise

        return CartSnapshot.take(
            lines=request.cart,
            shipping=request.shipping_selection,
            shipping_address=request.shipping_address,
            contact=request.contact,
            amount=amount,
        )

    def _create_gateway_order(self, attempt: CheckoutAttempt, snapshot: CartSnapshot) -> None:
        # Fresh receipt per attempt so a retried start never collides with an earlier order.
        receipt = f"rcpt_{attempt.attempt_id[:24]}"
        try:
            ref = self._gateway.create_order(
                amount_minor=snapshot.amount.total_minor,
                currency=snapshot.amount.currency,
                receipt=receipt,
                notes={
                    "client_id": attempt.client_id,
                    "attempt_id": attempt.attempt_id,
                    "email": snapshot.contact.email,
                },
            )
        except GatewayAdapterError as e:
            self._fail_attempt(attempt, GatewayUnavailableError.code, str(e))
            raise GatewayUnavailableError(
                "We could not start the payment. No money was taken; please try again."
            ) from e

        if ref.amount_minor != snapshot.amount.total_minor or ref.currency != snapshot.amount.currency:
            message = (
                f"Gateway order {ref.gateway_order_id} amount {ref.amount_minor} {ref.currency} "
                f"does not match {snapshot.amount.total_minor} {snapshot.amount.currency}"
            )
            self._fail_attempt(attempt, GatewayUnavailableError.code, message)
            raise GatewayUnavailableError(message)

        attempt.gateway_order = ref
        attempt.transition(CheckoutState.GATEWAY_ORDER_CREATED)

        logger.info(
            "Gateway order created",
            client_id=attempt.client_id,
            attempt_id=attempt.attempt_id,
            gateway_order_id=ref.gateway_order_id,
            amount_minor=ref.amount_minor,
            currency=ref.currency,
        )
        self._log_event(
            client_id=attempt.client_id,
            entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
            entity_id=attempt.attempt_id,
            event_type=EventTypeV1.GATEWAY_ORDER_CREATED,
            payload={"gateway_order_id": ref.gateway_order_id, "receipt": ref.receipt},
        )

    def _supersede(self, attempt: CheckoutAttempt) -> None:
        gateway_order_id = attempt.gateway_order.gateway_order_id if attempt.gateway_order else None
        attempt.fail(STALE_GATEWAY_ORDER, "Cart or shipping changed after the payment was prepared")
        logger.info(
            "Checkout attempt superseded by cart change",
            client_id=attempt.client_id,
            attempt_id=attempt.attempt_id,
            gateway_order_id=gateway_order_id,
        )
        self._log_event(
            client_id=attempt.client_id,
            entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
            entity_id=attempt.attempt_id,
            event_type=EventTypeV1.CHECKOUT_SUPERSEDED,
            payload={"gateway_order_id": gateway_order_id},
        )

    def complete_payment(self, attempt_id: str, confirmation: PaymentConfirmation) -> SettlementResult:
        attempt = self.get_attempt(attempt_id)

        if attempt.state is CheckoutState.FAILED:
            self._record_late_confirmation(attempt, confirmation)

        if attempt.state is not CheckoutState.AWAITING_CONFIRMATION:
            raise InvalidTransitionError(attempt.state.value, CheckoutState.CONFIRMATION_RECEIVED.value)

        snapshot = attempt.snapshot
        if attempt.gateway_order is None or snapshot is None:
            raise InvalidTransitionError(attempt.state.value, CheckoutState.CONFIRMATION_RECEIVED.value)

        confirmation = confirmation.model_copy()
        attempt.confirmation = confirmation
        attempt.transition(CheckoutState.CONFIRMATION_RECEIVED)

        expected_order_id = attempt.gateway_order.gateway_order_id
        verified = confirmation.gateway_order_id == expected_order_id and verify_payment_signature(
            expected_order_id,
            confirmation.gateway_payment_id,
            confirmation.signature,
            self._gateway.signing_secret,
        )
        if not verified:
            attempt.fail(PaymentVerificationFailedError.code, "Payment signature did not verify")
            # A charge may still exist at the gateway; support reconciles from this record.
            logger.error(
                "Payment verification failed",
                client_id=attempt.client_id,
                attempt_id=attempt.attempt_id,
                gateway_order_id=expected_order_id,
                confirmation_order_id=confirmation.gateway_order_id,
                gateway_payment_id=confirmation.gateway_payment_id,
            )
            self._log_event(
                client_id=attempt.client_id,
                entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
                entity_id=attempt.attempt_id,
                event_type=EventTypeV1.PAYMENT_VERIFICATION_FAILED,
                payload={
                    "gateway_order_id": expected_order_id,
                    "confirmation_order_id": confirmation.gateway_order_id,
                    "gateway_payment_id": confirmation.gateway_payment_id,
                },
            )
            raise PaymentVerificationFailedError(confirmation.gateway_payment_id)

        attempt.transition(CheckoutState.SIGNATURE_VERIFIED)
        self._log_event(
            client_id=attempt.client_id,
            entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
            entity_id=attempt.attempt_id,
            event_type=EventTypeV1.PAYMENT_CONFIRMED,
            payload={
                "gateway_order_id": expected_order_id,
                "gateway_payment_id": confirmation.gateway_payment_id,
            },
        )

        try:
            order = self._create_commerce_order(snapshot, confirmation)
        except Exception as e:
            attempt.transition(CheckoutState.ORDER_CREATION_FAILED)
            self._record_order_creation_failure(attempt, snapshot, confirmation, e)

        return self._settled(attempt.client_id, attempt.attempt_id, attempt, snapshot, confirmation, order)

    def _record_order_creation_failure(
        self,
        attempt: CheckoutAttempt,
        snapshot: CartSnapshot,
        confirmation: PaymentConfirmation,
        error: Exception,
    ) -> NoReturn:
        """Money is captured but no order exists: persist the recovery record, then raise."""

        reason = str(error) or type(error).__name__
        logger.error(
            "Order creation failed after payment was captured",
            client_id=attempt.client_id,
            attempt_id=attempt.attempt_id,
            gateway_order_id=confirmation.gateway_order_id,
            gateway_payment_id=confirmation.gateway_payment_id,
            error=reason,
            exc_info=not isinstance(error, CommerceAdapterError),
        )

        existing = self._pending.get(attempt.client_id)
        if existing is not None and existing.attempt_id != attempt.attempt_id:
            # One record per client; the earlier payment keeps it and this one goes to the event log.
            logger.error(
                "Captured payment could not be stored as pending; another settlement holds the slot",
                client_id=attempt.client_id,
                attempt_id=attempt.attempt_id,
                gateway_payment_id=confirmation.gateway_payment_id,
                pending_attempt_id=existing.attempt_id,
                pending_payment_id=existing.confirmation.gateway_payment_id,
            )
            self._log_event(
                client_id=attempt.client_id,
                entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
                entity_id=attempt.attempt_id,
                event_type=EventTypeV1.SETTLEMENT_CONFLICT,
                payload={
                    "gateway_order_id": confirmation.gateway_order_id,
                    "gateway_payment_id": confirmation.gateway_payment_id,
                    "signature": confirmation.signature,
                    "snapshot": snapshot.to_json(),
                    "error": reason,
                    "pending_attempt_id": existing.attempt_id,
                    "pending_payment_id": existing.confirmation.gateway_payment_id,
                },
            )
            raise PendingSettlementExistsError(
                existing, unsettled_payment_id=confirmation.gateway_payment_id
            ) from error

        pending = PendingSettlement(
            client_id=attempt.client_id,
            attempt_id=attempt.attempt_id,
            confirmation=confirmation,
            snapshot=snapshot,
            created_at=datetime.now(UTC),
            retry_count=0,
            last_error=reason,
        )
        self._pending.set(pending)
        self._log_event(
            client_id=attempt.client_id,
            entity_type=EntityTypeV1.PENDING_SETTLEMENT,
            entity_id=attempt.attempt_id,
            event_type=EventTypeV1.ORDER_CREATION_FAILED,
            payload={"gateway_payment_id": confirmation.gateway_payment_id, "error": reason},
        )
        raise OrderCreationFailedError(pending, reason) from error

    def fail_payment(
        self,
        attempt_id: str,
        error_description: str,
        error_code: str | None = None,
        gateway_payment_id: str | None = None,
    ) -> None:
        attempt = self.get_attempt(attempt_id)
        if attempt.state is not CheckoutState.AWAITING_CONFIRMATION:
            raise InvalidTransitionError(attempt.state.value, CheckoutState.FAILED.value)

        self._fail_attempt(attempt, PaymentFailedAtGatewayError.code, error_description)
        self._log_event(
            client_id=attempt.client_id,
            entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
            entity_id=attempt.attempt_id,
            event_type=EventTypeV1.PAYMENT_FAILED_AT_GATEWAY,
            payload={
                "error_description": error_description,
                "error_code": error_code,
                "gateway_payment_id": gateway_payment_id,
            },
        )
        raise PaymentFailedAtGatewayError(error_description, gateway_payment_id)

    def _record_late_confirmation(self, attempt: CheckoutAttempt, confirmation: PaymentConfirmation) -> None:
        """A confirmation for an attempt that is already closed.

        If it verifies, money was taken for a gateway order this service no longer honours.
        """

        gateway_order_id = attempt.gateway_order.gateway_order_id if attempt.gateway_order else ""
        genuine = confirmation.gateway_order_id == gateway_order_id and verify_payment_signature(
            gateway_order_id,
            confirmation.gateway_payment_id,
            confirmation.signature,
            self._gateway.signing_secret,
        )
        if genuine:
            logger.error(
                "Captured payment received for a closed checkout attempt; needs manual reconciliation",
                client_id=attempt.client_id,
                attempt_id=attempt.attempt_id,
                failure_code=attempt.failure_code,
                gateway_order_id=gateway_order_id,
                gateway_payment_id=confirmation.gateway_payment_id,
            )
            self._log_event(
                client_id=attempt.client_id,
                entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
                entity_id=attempt.attempt_id,
                event_type=EventTypeV1.STALE_CONFIRMATION_RECEIVED,
                payload={
                    "gateway_order_id": gateway_order_id,
                    "gateway_payment_id": confirmation.gateway_payment_id,
                    "failure_code": attempt.failure_code,
                },
            )

        if attempt.failure_code == STALE_GATEWAY_ORDER:
            raise StaleGatewayOrderError(gateway_order_id, confirmation.gateway_payment_id)

    def retry_pending(self, client_id: str) -> SettlementResult:
        pending = self._pending.get(client_id)
        if pending is None:
            raise NoPendingSettlementError(client_id)

        if not self._pending.claim_retry(client_id):
            raise RetryInFlightError(client_id)

        attempt = self._attempts.get(pending.attempt_id)
        try:
            order = self._create_commerce_order(pending.snapshot, pending.confirmation)
        except Exception as e:
            reason = str(e) or type(e).__name__
            updated = pending.with_failed_retry(reason)
            self._pending.set(updated)
            if attempt is not None and attempt.state is CheckoutState.ORDER_CREATION_FAILED:
                attempt.transition(CheckoutState.ORDER_CREATION_FAILED)

            logger.error(
                "Settlement retry failed",
                client_id=client_id,
                attempt_id=pending.attempt_id,
                gateway_payment_id=pending.confirmation.gateway_payment_id,
                retry_count=updated.retry_count,
                error=reason,
                exc_info=not isinstance(e, CommerceAdapterError),
            )
            self._log_event(
                client_id=client_id,
                entity_type=EntityTypeV1.PENDING_SETTLEMENT,
                entity_id=pending.attempt_id,
                event_type=EventTypeV1.SETTLEMENT_RETRY_FAILED,
                payload={
                    "gateway_payment_id": pending.confirmation.gateway_payment_id,
                    "retry_count": updated.retry_count,
                    "error": reason,
                },
            )
            raise OrderCreationFailedError(updated, reason) from e

        self._log_event(
            client_id=client_id,
            entity_type=EntityTypeV1.PENDING_SETTLEMENT,
            entity_id=pending.attempt_id,
            event_type=EventTypeV1.SETTLEMENT_RETRY_SUCCEEDED,
            payload={
                "gateway_payment_id": pending.confirmation.gateway_payment_id,
                "retry_count": pending.retry_count,
            },
        )
        return self._settled(client_id, pending.attempt_id, attempt, pending.snapshot, pending.confirmation, order)

    def dismiss_pending(self, client_id: str) -> PendingSettlement:
        pending = self._pending.get(client_id)
        if pending is None:
            raise NoPendingSettlementError(client_id)

        self._pending.delete(client_id)

        attempt = self._attempts.get(pending.attempt_id)
        if attempt is not None and attempt.state is CheckoutState.ORDER_CREATION_FAILED:
            attempt.transition(CheckoutState.ABANDONED)

        logger.warning(
            "Pending settlement dismissed; payment needs manual reconciliation",
            client_id=client_id,
            attempt_id=pending.attempt_id,
            gateway_order_id=pending.confirmation.gateway_order_id,
            gateway_payment_id=pending.confirmation.gateway_payment_id,
            retry_count=pending.retry_count,
        )
        self._log_event(
            client_id=client_id,
            entity_type=EntityTypeV1.PENDING_SETTLEMENT,
            entity_id=pending.attempt_id,
            event_type=EventTypeV1.SETTLEMENT_DISMISSED,
            payload={
                "gateway_payment_id": pending.confirmation.gateway_payment_id,
                "retry_count": pending.retry_count,
                "total_minor": pending.snapshot.amount.total_minor,
                "currency": pending.snapshot.amount.currency,
            },
        )
        return pending

    def _create_commerce_order(
        self, snapshot: CartSnapshot, confirmation: PaymentConfirmation
    ) -> CommerceOrder:
        shipping = snapshot.shipping
        request = CommerceOrderRequest(
            email=snapshot.contact.email,
            line_items=tuple(
                CommerceLineItem(
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for line in snapshot.lines
            ),
            shipping_address=snapshot.shipping_address,
            shipping_line=(
                CommerceShippingLine(title=shipping.label, price=shipping.price, code=shipping.code)
                if shipping is not None
                else None
            ),
            payment=PaymentMarker(
                gateway=self._gateway.name,
                gateway_reference=confirmation.gateway_payment_id,
            ),
            total_minor=snapshot.amount.total_minor,
            currency=snapshot.amount.currency,
            tags=(f"gateway-ref:{confirmation.gateway_payment_id}",),
        )
        return self._commerce.create_order(request)

    def _settled(
        self,
        client_id: str,
        attempt_id: str,
        attempt: CheckoutAttempt | None,
        snapshot: CartSnapshot,
        confirmation: PaymentConfirmation,
        order: CommerceOrder,
    ) -> SettlementResult:
        # Another attempt's captured payment may still be waiting on its own record.
        self._pending.delete(client_id, attempt_id=attempt_id)

        if attempt is not None:
            attempt.commerce_order = order
            attempt.transition(CheckoutState.ORDER_CREATED)

        logger.info(
            "Order created",
            client_id=client_id,
            attempt_id=attempt_id,
            gateway_payment_id=confirmation.gateway_payment_id,
            order_id=order.order_id,
            order_number=order.order_number,
        )
        self._log_event(
            client_id=client_id,
            entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
            entity_id=attempt_id,
            event_type=EventTypeV1.ORDER_CREATED,
            payload={
                "order_id": order.order_id,
                "order_number": order.order_number,
                "gateway_payment_id": confirmation.gateway_payment_id,
            },
        )

        return SettlementResult(
            client_id=client_id,
            attempt_id=attempt_id,
            order=order,
            gateway_payment_id=confirmation.gateway_payment_id,
            total_minor=snapshot.amount.total_minor,
            currency=snapshot.amount.currency,
        )

    def _fail_attempt(self, attempt: CheckoutAttempt, code: str, message: str) -> None:
        attempt.fail(code, message)
        logger.warning(
            "Checkout attempt failed",
            client_id=attempt.client_id,
            attempt_id=attempt.attempt_id,
            failure_code=code,
            reason=message,
        )
        if code != PaymentFailedAtGatewayError.code:
            self._log_event(
                client_id=attempt.client_id,
                entity_type=EntityTypeV1.CHECKOUT_ATTEMPT,
                entity_id=attempt.attempt_id,
                event_type=EventTypeV1.CHECKOUT_FAILED,
                payload={"failure_code": code, "reason": message},
            )

    def _log_event(
        self,
        *,
        client_id: str,
        entity_type: EntityTypeV1,
        entity_id: str,
        event_type: EventTypeV1,
        payload: dict,
    ) -> None:
        self._db.add(
            EventLog(
                id=uuid4().hex,
                client_id=client_id,
                entity_type=entity_type.value,
                entity_id=entity_id,
                event_type=event_type.value,
                event_payload_json=payload,
            )
        )
        self._db.commit()
