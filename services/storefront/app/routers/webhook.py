from __future__ import annotations

import json
import os
from uuid import uuid4

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.storefront.app.db.database import get_db
from services.storefront.app.db.models import EventLog, PendingSettlementRow
from services.storefront.app.settlement.signature import verify_webhook_signature
from services.storefront.app.settlement.state import CheckoutState
from services.storefront.app.settlement.store import attempt_store
from services.storefront.app.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

_RECONCILE_STATES = {CheckoutState.FAILED, CheckoutState.ABANDONED, CheckoutState.ORDER_CREATION_FAILED}


async def raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/v1/webhooks/gateway")
def gateway_webhook(
    body: bytes = Depends(raw_body),
    x_razorpay_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> dict:
    """Gateway event notifications.

    Captured payments are recorded for reconciliation only. Orders are created
    from the client's confirmation, never from here.
    """

    secret = os.getenv("STOREFRONT_GATEWAY_WEBHOOK_SECRET", "")
    if not secret:
        raise HTTPException(status_code=503, detail="Gateway webhook secret is not configured")

    if not verify_webhook_signature(body, x_razorpay_signature, secret):
        logger.warning("Rejected gateway webhook with invalid signature")
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    try:
        event = json.loads(body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON") from e

    event_name = event.get("event") if isinstance(event, dict) else None
    if event_name != "payment.captured":
        logger.debug("Ignoring gateway webhook", gateway_event=event_name)
        return {"status": "ignored"}

    entity = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
    payment_id = str(entity.get("id") or "")
    gateway_order_id = str(entity.get("order_id") or "")
    notes = entity.get("notes") or {}

    attempt = attempt_store.find_by_gateway_order(gateway_order_id) if gateway_order_id else None
    client_id = attempt.client_id if attempt else str(notes.get("client_id") or "unknown")

    pending = (
        db.query(PendingSettlementRow)
        .filter(PendingSettlementRow.gateway_payment_id == payment_id)
        .first()
    )

    needs_reconciliation = pending is None and (attempt is None or attempt.state in _RECONCILE_STATES)
    if needs_reconciliation:
        logger.warning(
            "Captured payment has no order and no pending settlement",
            client_id=client_id,
            gateway_order_id=gateway_order_id,
            gateway_payment_id=payment_id,
            attempt_state=attempt.state.value if attempt else None,
        )

    db.add(
        EventLog(
            id=uuid4().hex,
            client_id=client_id,
            entity_type=EntityTypeV1.GATEWAY_WEBHOOK.value,
            entity_id=payment_id or gateway_order_id,
            event_type=EventTypeV1.PAYMENT_CAPTURED_WEBHOOK.value,
            event_payload_json={
                "gateway_order_id": gateway_order_id,
                "gateway_payment_id": payment_id,
                "amount_minor": entity.get("amount"),
                "currency": entity.get("currency"),
                "attempt_state": attempt.state.value if attempt else None,
                "pending_settlement": pending is not None,
                "needs_reconciliation": needs_reconciliation,
            },
        )
    )
    db.commit()

    return {"status": "recorded"}
