from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from packages.shared.schemas.card_v1 import CheckoutCardV1
from services.storefront.app.models.checkout import PendingSettlementAction
from services.storefront.app.routers.deps import get_orchestrator, raise_settlement_http_error
from services.storefront.app.services.cards import abandoned_card, done_card, pending_card
from services.storefront.app.settlement.errors import OrderCreationFailedError, SettlementError
from services.storefront.app.settlement.orchestrator import SettlementOrchestrator

router = APIRouter()


@router.get("/v1/settlements/pending", response_model=CheckoutCardV1)
def get_pending_settlement(
    client_id: str,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> CheckoutCardV1:
    pending = orchestrator.get_pending(client_id)
    if pending is None:
        raise HTTPException(status_code=404, detail="No pending settlement")
    return pending_card(pending)


@router.post("/v1/settlements/pending/retry", response_model=CheckoutCardV1)
def retry_pending_settlement(
    payload: PendingSettlementAction,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> CheckoutCardV1:
    try:
        result = orchestrator.retry_pending(payload.client_id)
    except OrderCreationFailedError as e:
        return pending_card(e.pending)
    except SettlementError as e:
        raise_settlement_http_error(e)

    return done_card(result)


@router.post("/v1/settlements/pending/dismiss", response_model=CheckoutCardV1)
def dismiss_pending_settlement(
    payload: PendingSettlementAction,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> CheckoutCardV1:
    try:
        pending = orchestrator.dismiss_pending(payload.client_id)
    except SettlementError as e:
        raise_settlement_http_error(e)

    return abandoned_card(pending)
