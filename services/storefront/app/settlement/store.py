from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from services.storefront.app.db.models import PendingSettlementRow
from services.storefront.app.models.checkout import PaymentConfirmation
from services.storefront.app.settlement.state import CartSnapshot, CheckoutAttempt

# A retry that has not finished within this window is assumed to have died with its worker.
RETRY_LEASE = timedelta(minutes=2)

ATTEMPT_TTL = timedelta(hours=24)
MAX_ATTEMPTS = 10_000


@dataclass(frozen=True, slots=True)
class PendingSettlement:
    client_id: str
    attempt_id: str
    confirmation: PaymentConfirmation
    snapshot: CartSnapshot
    created_at: datetime
    retry_count: int = 0
    last_error: str | None = None

    def with_failed_retry(self, error: str) -> "PendingSettlement":
        return replace(self, retry_count=self.retry_count + 1, last_error=error)


class PendingSettlementStore(Protocol):
    """Durable home of the (at most one) pending settlement per client."""

    def get(self, client_id: str) -> PendingSettlement | None: ...

    def set(self, pending: PendingSettlement) -> None: ...

    def delete(self, client_id: str, attempt_id: str | None = None) -> None: ...

    def claim_retry(self, client_id: str) -> bool: ...


class SqlPendingSettlementStore:
    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, client_id: str) -> PendingSettlement | None:
        row = self._db.get(PendingSettlementRow, client_id, populate_existing=True)
        if row is None:
            return None
        return _from_row(row)

    def list_all(self) -> list[PendingSettlement]:
        rows = self._db.query(PendingSettlementRow).order_by(PendingSettlementRow.created_at).all()
        return [_from_row(r) for r in rows]

    def set(self, pending: PendingSettlement) -> None:
        now = datetime.utcnow()
        row = self._db.get(PendingSettlementRow, pending.client_id, populate_existing=True)
        if row is None:
            row = PendingSettlementRow(client_id=pending.client_id, created_at=pending.created_at)
            self._db.add(row)

        row.attempt_id = pending.attempt_id
        row.gateway_order_id = pending.confirmation.gateway_order_id
        row.gateway_payment_id = pending.confirmation.gateway_payment_id
        row.signature = pending.confirmation.signature
        row.snapshot_json = pending.snapshot.to_json()
        row.retry_count = pending.retry_count
        row.last_error = pending.last_error
        row.retry_in_flight = False
        row.updated_at = now
        self._db.commit()

    def delete(self, client_id: str, attempt_id: str | None = None) -> None:
        """Drop the client's record, or only the one owned by ``attempt_id`` when given."""
        row = self._db.get(PendingSettlementRow, client_id, populate_existing=True)
        if row is not None and (attempt_id is None or row.attempt_id == attempt_id):
            self._db.delete(row)
            self._db.commit()

    def claim_retry(self, client_id: str) -> bool:
        now = datetime.utcnow()
        result = self._db.execute(
            update(PendingSettlementRow)
            .where(PendingSettlementRow.client_id == client_id)
            .where(
                or_(
                    PendingSettlementRow.retry_in_flight.is_(False),
                    PendingSettlementRow.updated_at < now - RETRY_LEASE,
                )
            )
            .values(retry_in_flight=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self._db.commit()
        return result.rowcount == 1


def _from_row(row: PendingSettlementRow) -> PendingSettlement:
    created_at = row.created_at
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)

    return PendingSettlement(
        client_id=row.client_id,
        attempt_id=row.attempt_id,
        confirmation=PaymentConfirmation(
            gateway_order_id=row.gateway_order_id,
            gateway_payment_id=row.gateway_payment_id,
            signature=row.signature,
        ),
        snapshot=CartSnapshot.from_json(row.snapshot_json),
        created_at=created_at,
        retry_count=row.retry_count,
        last_error=row.last_error,
    )


class CheckoutAttemptStore:
    """In-process store for checkout attempts.

    Attempts are session state: losing one before payment is confirmed is safe, and
    anything that must survive a restart is written to the pending settlement store.
    Attempts idle for longer than ``ttl`` are dropped, and once ``max_attempts`` is
    reached the oldest finished attempts make room first.
    """

    def __init__(self, ttl: timedelta = ATTEMPT_TTL, max_attempts: int = MAX_ATTEMPTS) -> None:
        self._attempts: dict[str, CheckoutAttempt] = {}
        self._by_gateway_order: dict[str, str] = {}
        self._ttl = ttl
        self._max_attempts = max_attempts
        self._lock = threading.Lock()

    def save(self, attempt: CheckoutAttempt) -> None:
        with self._lock:
            self._attempts[attempt.attempt_id] = attempt
            self._evict(datetime.now(UTC))

    def get(self, attempt_id: str) -> CheckoutAttempt | None:
        with self._lock:
            attempt = self._attempts.get(attempt_id)
            if attempt is not None and self._expired(attempt, datetime.now(UTC)):
                self._drop(attempt_id)
                return None
            return attempt

    def find_by_gateway_order(self, gateway_order_id: str) -> CheckoutAttempt | None:
        with self._lock:
            attempt_id = self._by_gateway_order.get(gateway_order_id)
            if attempt_id is None:
                # Gateway orders are attached after the attempt is first saved.
                for attempt in self._attempts.values():
                    if attempt.gateway_order and attempt.gateway_order.gateway_order_id == gateway_order_id:
                        self._by_gateway_order[gateway_order_id] = attempt.attempt_id
                        return attempt
                return None
            return self._attempts.get(attempt_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)

    def clear(self) -> None:
        with self._lock:
            self._attempts.clear()
            self._by_gateway_order.clear()

    def _expired(self, attempt: CheckoutAttempt, now: datetime) -> bool:
        return attempt.updated_at < now - self._ttl

    def _drop(self, attempt_id: str) -> None:
        attempt = self._attempts.pop(attempt_id, None)
        if attempt is not None and attempt.gateway_order is not None:
            self._by_gateway_order.pop(attempt.gateway_order.gateway_order_id, None)

    def _evict(self, now: datetime) -> None:
        for attempt_id in [k for k, a in self._attempts.items() if self._expired(a, now)]:
            self._drop(attempt_id)

        overflow = len(self._attempts) - self._max_attempts
        if overflow > 0:
            oldest = sorted(self._attempts.values(), key=lambda a: (not a.is_terminal, a.updated_at))
            for attempt in oldest[:overflow]:
                self._drop(attempt.attempt_id)


attempt_store = CheckoutAttemptStore()
