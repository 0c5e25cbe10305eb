from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from services.storefront.app.services.commerce_base import (
    CommerceAdapterError,
    CommerceConfigError,
    CommerceOrder,
    CommerceOrderRequest,
    CommerceRejectedError,
    CommerceTimeoutError,
)
from services.storefront.app.services.http_json import HttpJsonError, HttpTransportError, post_json
from services.storefront.app.settlement.amount import minor_unit_exponent


@dataclass(frozen=True, slots=True)
class _ShopifyConfig:
    store: str
    access_token: str
    api_version: str
    timeout_s: float


class ShopifyCommerceBackend:
    """Shopify Admin REST adapter for creating already-paid orders.

    The order carries a tag derived from the gateway payment id. Shopify does not dedupe on
    it by itself; a store-side flow (or the support team) uses the tag to find duplicates.

    Env vars:
    - STOREFRONT_COMMERCE_ADAPTER=shopify
    - STOREFRONT_SHOPIFY_STORE (required, e.g. my-shop.myshopify.com)
    - STOREFRONT_SHOPIFY_ACCESS_TOKEN (required)
    - STOREFRONT_SHOPIFY_API_VERSION (default: 2024-01)
    - STOREFRONT_COMMERCE_TIMEOUT_S (default: 15)
    """

    name = "shopify"

    def __init__(self, cfg: _ShopifyConfig) -> None:
        self._cfg = cfg

    @classmethod
    def from_env(cls) -> "ShopifyCommerceBackend":
        store = os.getenv("STOREFRONT_SHOPIFY_STORE", "").strip()
        token = os.getenv("STOREFRONT_SHOPIFY_ACCESS_TOKEN", "").strip()

        missing = [
            name
            for name, value in (
                ("STOREFRONT_SHOPIFY_STORE", store),
                ("STOREFRONT_SHOPIFY_ACCESS_TOKEN", token),
            )
            if not value
        ]
        if missing:
            raise CommerceConfigError(missing)

        store = store.removeprefix("https://").removeprefix("http://").rstrip("/")
        return cls(
            _ShopifyConfig(
                store=store,
                access_token=token,
                api_version=os.getenv("STOREFRONT_SHOPIFY_API_VERSION", "2024-01"),
                timeout_s=float(os.getenv("STOREFRONT_COMMERCE_TIMEOUT_S", "15")),
            )
        )

    def create_order(self, request: CommerceOrderRequest) -> CommerceOrder:
        url = f"https://{self._cfg.store}/admin/api/{self._cfg.api_version}/orders.json"

        try:
            payload = post_json(
                url,
                {"order": build_order_payload(request)},
                headers={"X-Shopify-Access-Token": self._cfg.access_token},
                timeout_s=self._cfg.timeout_s,
            )
        except HttpTransportError as e:
            if e.timed_out:
                raise CommerceTimeoutError(self._cfg.timeout_s) from e
            raise CommerceAdapterError(f"Shopify unreachable: {e}") from e
        except HttpJsonError as e:
            raise CommerceRejectedError(e.status, e.body[:300]) from e

        order = payload.get("order")
        if not isinstance(order, dict) or "id" not in order:
            raise CommerceAdapterError(f"Unexpected Shopify order response: {payload!r}")

        return CommerceOrder(
            order_id=str(order["id"]),
            order_number=str(order.get("order_number") or order.get("name") or ""),
            confirmation_url=order.get("order_status_url"),
        )


def build_order_payload(request: CommerceOrderRequest) -> dict[str, Any]:
    addr = request.shipping_address
    total = _major_units(request.total_minor, request.currency)

    line_items: list[dict[str, Any]] = []
    for item in request.line_items:
        line: dict[str, Any] = {"variant_id": item.variant_id, "quantity": item.quantity}
        if item.unit_price is not None:
            line["price"] = str(item.unit_price)
        line_items.append(line)

    order: dict[str, Any] = {
        "email": request.email,
        "line_items": line_items,
        "shipping_address": {
            "first_name": addr.first_name,
            "last_name": addr.last_name,
            "address1": addr.address1,
            "address2": addr.address2,
            "city": addr.city,
            "province": addr.province,
            "country": addr.country,
            "zip": addr.zip,
            "phone": addr.phone,
            "country_code": addr.country_code,
        },
        "financial_status": request.payment.status,
        "currency": request.currency,
        "transactions": [
            {
                "kind": "sale",
                "status": "success",
                "gateway": request.payment.gateway,
                "authorization": request.payment.gateway_reference,
                "amount": str(total),
            }
        ],
        "note": "Order created via API",
        "tags": ", ".join(("api-created", *request.tags)),
    }

    if request.shipping_line is not None:
        order["shipping_lines"] = [
            {
                "title": request.shipping_line.title,
                "price": str(request.shipping_line.price),
                "code": request.shipping_line.code,
            }
        ]

    return order


def _major_units(amount_minor: int, currency: str) -> Decimal:
    exponent = minor_unit_exponent(currency)
    return Decimal(amount_minor).scaleb(-exponent).quantize(Decimal(1).scaleb(-exponent))
