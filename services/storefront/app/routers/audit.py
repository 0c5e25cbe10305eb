from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from services.storefront.app.db.database import get_db
from services.storefront.app.db.models import EventLog
from services.storefront.app.models.audit import EventLogItem

router = APIRouter()


@router.get("/v1/events", response_model=list[EventLogItem])
def list_events(client_id: str, db: Session = Depends(get_db)) -> list[EventLogItem]:
    rows = (
        db.query(EventLog)
        .filter(EventLog.client_id == client_id)
        .order_by(EventLog.created_at.asc())
        .limit(500)
        .all()
    )

    return [
        EventLogItem(
            id=r.id,
            entity_type=r.entity_type,
            entity_id=r.entity_id,
            event_type=r.event_type,
            payload=r.event_payload_json or {},
            created_at=r.created_at.isoformat(),
        )
        for r in rows
    ]
