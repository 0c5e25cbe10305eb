from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from packages.shared.schemas.card_v1 import CheckoutCardV1
from services.storefront.app.models.checkout import (
    CheckoutRequest,
    PaymentConfirmation,
    PaymentFailure,
)
from services.storefront.app.routers.deps import (
    checkout_currency,
    get_orchestrator,
    raise_settlement_http_error,
)
from services.storefront.app.services.cards import (
    attempt_card,
    done_card,
    failed_card,
    payment_card,
    pending_card,
)
from services.storefront.app.settlement.errors import (
    GatewayUnavailableError,
    OrderCreationFailedError,
    PaymentFailedAtGatewayError,
    PaymentVerificationFailedError,
    PendingSettlementExistsError,
    SettlementError,
)
from services.storefront.app.settlement.orchestrator import SettlementOrchestrator

router = APIRouter()


@router.post("/v1/checkout", response_model=CheckoutCardV1)
def start_checkout(
    payload: CheckoutRequest,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> CheckoutCardV1 | JSONResponse:
    try:
        attempt = orchestrator.start_checkout(payload, currency=checkout_currency())
    except PendingSettlementExistsError as e:
        card = pending_card(e.pending, error_code=PendingSettlementExistsError.code)
        return JSONResponse(status_code=409, content=card.model_dump(mode="json"))
    except GatewayUnavailableError as e:
        card = failed_card(client_id=payload.client_id, error_code=e.code, message=str(e))
        return JSONResponse(status_code=502, content=card.model_dump(mode="json"))
    except SettlementError as e:
        raise_settlement_http_error(e)

    return payment_card(attempt, orchestrator.gateway)


@router.get("/v1/checkout/{attempt_id}", response_model=CheckoutCardV1)
def get_checkout(
    attempt_id: str,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> CheckoutCardV1:
    try:
        attempt = orchestrator.get_attempt(attempt_id)
    except SettlementError as e:
        raise_settlement_http_error(e)

    pending = orchestrator.get_pending(attempt.client_id)
    if pending is not None and pending.attempt_id != attempt.attempt_id:
        pending = None
    return attempt_card(attempt, orchestrator.gateway, pending)


@router.post("/v1/checkout/{attempt_id}/confirmation", response_model=CheckoutCardV1)
def confirm_payment(
    attempt_id: str,
    payload: PaymentConfirmation,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> CheckoutCardV1 | JSONResponse:
    try:
        attempt = orchestrator.get_attempt(attempt_id)
        result = orchestrator.complete_payment(attempt_id, payload)
    except PaymentVerificationFailedError as e:
        return failed_card(
            client_id=attempt.client_id,
            error_code=e.code,
            message=str(e),
            attempt=attempt,
            gateway_payment_id=e.gateway_payment_id or None,
        )
    except OrderCreationFailedError as e:
        return pending_card(e.pending)
    except PendingSettlementExistsError as e:
        card = pending_card(
            e.pending,
            error_code=PendingSettlementExistsError.code,
            unsettled_payment_id=e.unsettled_payment_id,
        )
        return JSONResponse(status_code=409, content=card.model_dump(mode="json"))
    except SettlementError as e:
        raise_settlement_http_error(e)

    return done_card(result, gateway_order_id=payload.gateway_order_id)


@router.post("/v1/checkout/{attempt_id}/failure", response_model=CheckoutCardV1)
def report_payment_failure(
    attempt_id: str,
    payload: PaymentFailure,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> CheckoutCardV1:
    try:
        attempt = orchestrator.get_attempt(attempt_id)
        orchestrator.fail_payment(
            attempt_id,
            payload.error_description,
            error_code=payload.error_code,
            gateway_payment_id=payload.gateway_payment_id,
        )
    except PaymentFailedAtGatewayError as e:
        return failed_card(
            client_id=attempt.client_id,
            error_code=e.code,
            message=f"{str(e)}. No order was placed; you can try again.",
            attempt=attempt,
        )
    except SettlementError as e:
        raise_settlement_http_error(e)

    # fail_payment always raises; this is unreachable for a valid attempt.
    return attempt_card(attempt, orchestrator.gateway)
