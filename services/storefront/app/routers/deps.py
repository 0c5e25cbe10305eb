from __future__ import annotations

import os

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from services.storefront.app.db.database import get_db
from services.storefront.app.services.commerce_factory import get_commerce_backend
from services.storefront.app.services.gateway_factory import get_payment_gateway
from services.storefront.app.settlement.errors import (
    CheckoutAttemptNotFoundError,
    GatewayUnavailableError,
    InvalidAmountError,
    InvalidTransitionError,
    NoPendingSettlementError,
    PendingSettlementExistsError,
    RetryInFlightError,
    SettlementError,
    StaleGatewayOrderError,
)
from services.storefront.app.settlement.orchestrator import SettlementOrchestrator


def get_orchestrator(db: Session = Depends(get_db)) -> SettlementOrchestrator:
    try:
        gateway = get_payment_gateway()
        commerce = get_commerce_backend()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    return SettlementOrchestrator(db, gateway=gateway, commerce=commerce)


def checkout_currency() -> str:
    return os.getenv("STOREFRONT_CURRENCY", "INR").strip().upper() or "INR"


def raise_settlement_http_error(e: Exception) -> None:
    if isinstance(e, (CheckoutAttemptNotFoundError, NoPendingSettlementError)):
        raise HTTPException(status_code=404, detail=str(e)) from e

    if isinstance(
        e,
        (
            InvalidTransitionError,
            StaleGatewayOrderError,
            RetryInFlightError,
            PendingSettlementExistsError,
        ),
    ):
        raise HTTPException(status_code=409, detail=str(e)) from e

    if isinstance(e, InvalidAmountError):
        raise HTTPException(status_code=422, detail=str(e)) from e

    if isinstance(e, GatewayUnavailableError):
        raise HTTPException(status_code=502, detail=str(e)) from e

    if isinstance(e, SettlementError):
        raise HTTPException(status_code=400, detail=str(e)) from e

    raise HTTPException(status_code=500, detail="Internal Server Error") from e
