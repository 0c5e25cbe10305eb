from __future__ import annotations

from fastapi.testclient import TestClient

from services.storefront.app.services.commerce_mock import MockCommerceBackend
from services.storefront.app.services.gateway_mock import MockPaymentGateway


def _start(client: TestClient, payload: dict) -> dict:
    response = client.post("/v1/checkout", json=payload)
    assert response.status_code == 200, response.text
    return response.json()


def test_start_checkout_returns_payment_card(client: TestClient, checkout_payload) -> None:
    card = _start(client, checkout_payload())

    assert card["type"] == "PAYMENT"
    assert card["state"] == "AWAITING_CONFIRMATION"
    assert card["amount_minor"] == 109800
    assert card["currency"] == "INR"
    assert card["gateway_order_id"].startswith("order_")
    assert card["body"]["key_id"] == "rzp_test_mock"
    assert card["body"]["prefill"]["email"] == "asha@example.com"
    assert card["actions"][0]["type"] == "PAY"
    # The signing secret never reaches the client.
    assert "test_key_secret" not in str(card)


def test_full_checkout_returns_done_card_and_clears_cart(
    client: TestClient, gateway: MockPaymentGateway, checkout_payload
) -> None:
    card = _start(client, checkout_payload())
    confirmation = gateway.simulate_payment(card["gateway_order_id"])

    response = client.post(
        f"/v1/checkout/{card['attempt_id']}/confirmation", json=confirmation.model_dump()
    )
    assert response.status_code == 200
    done = response.json()
    assert done["type"] == "DONE"
    assert done["gateway_payment_id"] == confirmation.gateway_payment_id
    assert done["body"]["order_number"] == "1001"
    assert done["body"]["clear_cart"] is True

    status = client.get(f"/v1/checkout/{card['attempt_id']}").json()
    assert status["type"] == "DONE"
    assert status["state"] == "ORDER_CREATED"


def test_invalid_cart_is_422(client: TestClient, gateway: MockPaymentGateway, checkout_payload) -> None:
    response = client.post("/v1/checkout", json=checkout_payload(cart=[]))
    assert response.status_code == 422
    assert gateway.calls == []


def test_gateway_outage_returns_failed_card(
    client: TestClient, gateway: MockPaymentGateway, checkout_payload
) -> None:
    gateway.configure("timeout")

    response = client.post("/v1/checkout", json=checkout_payload())
    assert response.status_code == 502
    card = response.json()
    assert card["type"] == "FAILED"
    assert card["error_code"] == "GATEWAY_UNAVAILABLE"
    assert "No money was taken" in card["summary"]


def test_bad_signature_returns_failed_card_with_support_action(
    client: TestClient,
    gateway: MockPaymentGateway,
    commerce: MockCommerceBackend,
    checkout_payload,
) -> None:
    card = _start(client, checkout_payload())
    confirmation = gateway.simulate_payment(card["gateway_order_id"]).model_copy(
        update={"signature": "deadbeef"}
    )

    response = client.post(
        f"/v1/checkout/{card['attempt_id']}/confirmation", json=confirmation.model_dump()
    )
    assert response.status_code == 200
    failed = response.json()
    assert failed["type"] == "FAILED"
    assert failed["error_code"] == "PAYMENT_VERIFICATION_FAILED"
    assert confirmation.gateway_payment_id in failed["summary"]
    assert {a["type"] for a in failed["actions"]} == {"RESTART", "CONTACT_SUPPORT"}
    assert commerce.calls == []


def test_order_failure_returns_pending_card_and_blocks_new_checkout(
    client: TestClient,
    gateway: MockPaymentGateway,
    commerce: MockCommerceBackend,
    checkout_payload,
) -> None:
    card = _start(client, checkout_payload())
    confirmation = gateway.simulate_payment(card["gateway_order_id"])
    commerce.configure("error")

    response = client.post(
        f"/v1/checkout/{card['attempt_id']}/confirmation", json=confirmation.model_dump()
    )
    assert response.status_code == 200
    pending = response.json()
    assert pending["type"] == "PENDING_SETTLEMENT"
    assert pending["summary"] == (
        f"Payment succeeded but order failed. Contact support with ID: {confirmation.gateway_payment_id}"
    )
    assert [a["type"] for a in pending["actions"]] == ["RETRY", "DISMISS", "CONTACT_SUPPORT"]
    assert pending["body"]["clear_cart"] is False

    blocked = client.post("/v1/checkout", json=checkout_payload())
    assert blocked.status_code == 409
    assert blocked.json()["type"] == "PENDING_SETTLEMENT"
    assert blocked.json()["error_code"] == "PENDING_SETTLEMENT_EXISTS"
    assert len(gateway.calls) == 1


def test_gateway_failure_callback_returns_failed_card(
    client: TestClient, checkout_payload
) -> None:
    card = _start(client, checkout_payload())

    response = client.post(
        f"/v1/checkout/{card['attempt_id']}/failure",
        json={"error_description": "Card declined", "error_code": "BAD_REQUEST_ERROR"},
    )
    assert response.status_code == 200
    failed = response.json()
    assert failed["type"] == "FAILED"
    assert failed["error_code"] == "PAYMENT_FAILED_AT_GATEWAY"
    assert "Card declined" in failed["summary"]

    again = client.post(
        f"/v1/checkout/{card['attempt_id']}/failure", json={"error_description": "again"}
    )
    assert again.status_code == 409


def test_resume_and_supersede_via_attempt_id(
    client: TestClient, gateway: MockPaymentGateway, checkout_payload
) -> None:
    first = _start(client, checkout_payload())

    resumed = _start(client, checkout_payload(attempt_id=first["attempt_id"]))
    assert resumed["attempt_id"] == first["attempt_id"]
    assert resumed["gateway_order_id"] == first["gateway_order_id"]

    changed_cart = [{"product_id": "prod-2", "variant_id": "44002", "unit_price": "1299.00", "quantity": 1}]
    fresh = _start(client, checkout_payload(cart=changed_cart, attempt_id=first["attempt_id"]))
    assert fresh["attempt_id"] != first["attempt_id"]
    assert fresh["amount_minor"] == 139900
    assert len(gateway.calls) == 2

    stale = gateway.simulate_payment(first["gateway_order_id"])
    response = client.post(
        f"/v1/checkout/{first['attempt_id']}/confirmation", json=stale.model_dump()
    )
    assert response.status_code == 409

    old = client.get(f"/v1/checkout/{first['attempt_id']}").json()
    assert old["type"] == "FAILED"
    assert old["error_code"] == "STALE_GATEWAY_ORDER"


def test_unknown_attempt_is_404(client: TestClient) -> None:
    assert client.get("/v1/checkout/missing").status_code == 404
    response = client.post(
        "/v1/checkout/missing/confirmation",
        json={"gateway_order_id": "order_x", "gateway_payment_id": "pay_x", "signature": "x"},
    )
    assert response.status_code == 404


def test_checkout_request_validation(client: TestClient, checkout_payload) -> None:
    payload = checkout_payload()
    del payload["contact"]
    assert client.post("/v1/checkout", json=payload).status_code == 422


def test_second_failed_order_returns_conflict_card_naming_both_payments(
    client: TestClient,
    gateway: MockPaymentGateway,
    commerce: MockCommerceBackend,
    checkout_payload,
) -> None:
    first = _start(client, checkout_payload())
    second = _start(client, checkout_payload())
    first_conf = gateway.simulate_payment(first["gateway_order_id"])
    second_conf = gateway.simulate_payment(second["gateway_order_id"])

    commerce.configure("rejected", times=2)
    client.post(f"/v1/checkout/{first['attempt_id']}/confirmation", json=first_conf.model_dump())
    response = client.post(f"/v1/checkout/{second['attempt_id']}/confirmation", json=second_conf.model_dump())

    assert response.status_code == 409
    card = response.json()
    assert card["type"] == "PENDING_SETTLEMENT"
    assert card["error_code"] == "PENDING_SETTLEMENT_EXISTS"
    assert card["gateway_payment_id"] == first_conf.gateway_payment_id
    assert any(second_conf.gateway_payment_id in w for w in card["warnings"])
