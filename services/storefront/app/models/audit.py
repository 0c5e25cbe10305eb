from __future__ import annotations

from pydantic import BaseModel, Field


class EventLogItem(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    event_type: str
    payload: dict = Field(default_factory=dict)
    created_at: str
