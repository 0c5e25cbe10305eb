from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PendingSettlementRow(Base):
    """A captured payment that has not yet become a commerce order.

    At most one row per client. The row is deleted when a retry succeeds or the
    client dismisses it.
    """

    __tablename__ = "pending_settlements"

    client_id: Mapped[str] = mapped_column(String, primary_key=True)
    attempt_id: Mapped[str] = mapped_column(String, nullable=False)

    gateway_order_id: Mapped[str] = mapped_column(String, nullable=False)
    gateway_payment_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    signature: Mapped[str] = mapped_column(String, nullable=False)

    snapshot_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    retry_in_flight: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_error: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class EventLog(Base):
    __tablename__ = "event_log"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    client_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[str] = mapped_column(String, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    event_payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
