from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from services.storefront.app.services.shipping import InvalidPostalCodeError, quote_shipping_options


def test_quote_returns_standard_delivery_for_pin() -> None:
    options = quote_shipping_options(" 560001 ")

    assert len(options) == 1
    option = options[0]
    assert option.label == "Standard Delivery"
    assert str(option.price) == "100.00"
    assert option.estimated_delivery_label == "3-7 business days"
    assert option.code == "standard"
    assert option.postal_code == "560001"


@pytest.mark.parametrize("postal_code", ["", "5600", "5600011", "56000a", "SW1A 1AA"])
def test_quote_rejects_invalid_pin(postal_code: str) -> None:
    with pytest.raises(InvalidPostalCodeError, match="6-digit PIN"):
        quote_shipping_options(postal_code)


def test_shipping_options_endpoint(client: TestClient) -> None:
    response = client.get("/v1/shipping/options", params={"postal_code": "400001"})
    assert response.status_code == 200

    data = response.json()
    assert data["postal_code"] == "400001"
    assert data["options"][0]["method_id"] == "standard_delivery"
    assert data["options"][0]["postal_code"] == "400001"


def test_shipping_options_endpoint_rejects_bad_pin(client: TestClient) -> None:
    response = client.get("/v1/shipping/options", params={"postal_code": "12"})
    assert response.status_code == 422


def test_quoted_option_can_be_used_for_checkout(client: TestClient, checkout_payload) -> None:
    option = client.get("/v1/shipping/options", params={"postal_code": "560001"}).json()["options"][0]

    response = client.post("/v1/checkout", json=checkout_payload(shipping_selection=option))
    assert response.status_code == 200
    assert response.json()["body"]["shipping_minor"] == 10000
