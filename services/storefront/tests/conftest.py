from __future__ import annotations

from collections.abc import Callable, Iterator
import socket
import threading
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from services.storefront.app.services.commerce_factory import (
    reset_commerce_backend,
    set_commerce_backend,
)
from services.storefront.app.services.commerce_mock import MockCommerceBackend
from services.storefront.app.services.gateway_factory import (
    reset_payment_gateway,
    set_payment_gateway,
)
from services.storefront.app.services.gateway_mock import MockPaymentGateway
from services.storefront.app.settlement.store import attempt_store

TEST_SECRET = "test_key_secret"


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("STOREFRONT_ENV", "test")
    monkeypatch.delenv("STOREFRONT_LOG_DIR", raising=False)
    attempt_store.clear()
    reset_payment_gateway()
    reset_commerce_backend()
    yield
    attempt_store.clear()
    reset_payment_gateway()
    reset_commerce_backend()


@pytest.fixture()
def db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Session]:
    db_path = tmp_path / "storefront_test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("STOREFRONT_DB_AUTO_CREATE", "true")

    from services.storefront.app.db.database import db_session
    from services.storefront.app.db.init_db import init_db

    init_db()
    session = db_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def gateway() -> MockPaymentGateway:
    gw = MockPaymentGateway(signing_secret=TEST_SECRET)
    set_payment_gateway(gw)
    return gw


@pytest.fixture()
def commerce() -> MockCommerceBackend:
    backend = MockCommerceBackend()
    set_commerce_backend(backend)
    return backend


@pytest.fixture()
def client(db: Session, gateway: MockPaymentGateway, commerce: MockCommerceBackend) -> Iterator[TestClient]:
    from services.storefront.app.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def checkout_payload() -> Callable[..., dict[str, Any]]:
    def _build(client_id: str = "client-1", **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "client_id": client_id,
            "contact": {"email": "asha@example.com", "full_name": "Asha Rao", "phone": "9876543210"},
            "shipping_address": {
                "first_name": "Asha",
                "last_name": "Rao",
                "address1": "12 MG Road",
                "city": "Bengaluru",
                "province": "Karnataka",
                "zip": "560001",
                "phone": "9876543210",
            },
            "shipping_selection": {
                "method_id": "standard_delivery",
                "label": "Standard Delivery",
                "price": "100.00",
                "estimated_delivery_label": "3-7 business days",
                "code": "standard",
                "postal_code": "560001",
            },
            "cart": [
                {
                    "product_id": "prod-1",
                    "variant_id": "44001",
                    "title": "Cotton Tee",
                    "unit_price": "499.00",
                    "quantity": 2,
                }
            ],
        }
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture()
def hangup_server() -> Iterator[str]:
    """HTTP endpoint that reads the request and closes the connection without answering."""

    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen()
    srv.settimeout(0.2)
    stop = threading.Event()

    def serve() -> None:
        while not stop.is_set():
            try:
                conn, _ = srv.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with conn:
                conn.settimeout(1)
                try:
                    conn.recv(65536)
                except OSError:
                    pass

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{srv.getsockname()[1]}/orders.json"
    finally:
        stop.set()
        thread.join(timeout=2)
        srv.close()
