from __future__ import annotations

import base64
import json
import os
from dataclasses import dataclass

from services.storefront.app.services.gateway_base import (
    GatewayAdapterError,
    GatewayConfigError,
    GatewayOrderRef,
    GatewayRejectedError,
    GatewayTimeoutError,
)
from services.storefront.app.services.http_json import HttpJsonError, HttpTransportError, post_json


@dataclass(frozen=True, slots=True)
class _RazorpayConfig:
    base_url: str
    key_id: str
    key_secret: str
    timeout_s: float


class RazorpayGateway:
    """Razorpay Orders API adapter.

    Env vars:
    - STOREFRONT_GATEWAY_ADAPTER=razorpay
    - STOREFRONT_RAZORPAY_KEY_ID (required)
    - STOREFRONT_RAZORPAY_KEY_SECRET (required, server-only)
    - STOREFRONT_RAZORPAY_BASE_URL (default: https://api.razorpay.com)
    - STOREFRONT_GATEWAY_TIMEOUT_S (default: 10)
    """

    name = "razorpay"

    def __init__(self, cfg: _RazorpayConfig) -> None:
        self._cfg = cfg
        self.key_id = cfg.key_id
        self.signing_secret = cfg.key_secret

    @classmethod
    def from_env(cls) -> "RazorpayGateway":
        key_id = os.getenv("STOREFRONT_RAZORPAY_KEY_ID", "").strip()
        key_secret = os.getenv("STOREFRONT_RAZORPAY_KEY_SECRET", "").strip()

        missing = [
            name
            for name, value in (
                ("STOREFRONT_RAZORPAY_KEY_ID", key_id),
                ("STOREFRONT_RAZORPAY_KEY_SECRET", key_secret),
            )
            if not value
        ]
        if missing:
            raise GatewayConfigError(missing)

        return cls(
            _RazorpayConfig(
                base_url=os.getenv("STOREFRONT_RAZORPAY_BASE_URL", "https://api.razorpay.com").rstrip("/"),
                key_id=key_id,
                key_secret=key_secret,
                timeout_s=float(os.getenv("STOREFRONT_GATEWAY_TIMEOUT_S", "10")),
            )
        )

    def create_order(
        self,
        *,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrderRef:
        body = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }

        try:
            payload = post_json(
                f"{self._cfg.base_url}/v1/orders",
                body,
                headers={"Authorization": self._basic_auth()},
                timeout_s=self._cfg.timeout_s,
            )
        except HttpTransportError as e:
            if e.timed_out:
                raise GatewayTimeoutError(self._cfg.timeout_s) from e
            raise GatewayAdapterError(f"Razorpay unreachable: {e}") from e
        except HttpJsonError as e:
            raise GatewayRejectedError(e.status, _error_description(e.body)) from e

        try:
            return GatewayOrderRef(
                gateway_order_id=str(payload["id"]),
                amount_minor=int(payload["amount"]),
                currency=str(payload["currency"]),
                receipt=str(payload.get("receipt") or receipt),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayAdapterError(f"Unexpected Razorpay order response: {payload!r}") from e

    def _basic_auth(self) -> str:
        raw = f"{self._cfg.key_id}:{self._cfg.key_secret}".encode("utf-8")
        return "Basic " + base64.b64encode(raw).decode("ascii")


def _error_description(body: str) -> str:
    # Razorpay errors look like {"error": {"code": ..., "description": ...}}.
    try:
        data = json.loads(body)
        return str(data["error"]["description"])
    except (ValueError, KeyError, TypeError):
        return body[:300]
