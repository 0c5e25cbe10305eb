from __future__ import annotations

import os

from services.storefront.app.services.commerce_base import CommerceBackend, CommerceConfigError
from services.storefront.app.services.commerce_mock import MockCommerceBackend

_current: CommerceBackend | None = None
_current_mode: str | None = None


def get_commerce_backend() -> CommerceBackend:
    """Select a commerce backend adapter based on env vars.

    Defaults to the mock backend. Set STOREFRONT_COMMERCE_ADAPTER=shopify plus the Shopify
    credentials to talk to a real store.
    """

    global _current, _current_mode

    mode = os.getenv("STOREFRONT_COMMERCE_ADAPTER", "mock").strip().lower()

    if _current is not None and (_current_mode is None or _current_mode == mode):
        return _current

    if mode == "mock":
        backend: CommerceBackend = MockCommerceBackend()
    elif mode == "shopify":
        from services.storefront.app.services.commerce_shopify import ShopifyCommerceBackend

        try:
            backend = ShopifyCommerceBackend.from_env()
        except CommerceConfigError as e:
            raise ValueError(str(e)) from e
    else:
        raise ValueError(f"Unknown STOREFRONT_COMMERCE_ADAPTER={mode!r}. Expected mock or shopify.")

    _current = backend
    _current_mode = mode
    return backend


def set_commerce_backend(backend: CommerceBackend) -> None:
    """Override the active backend regardless of env (useful for tests)."""
    global _current, _current_mode
    _current = backend
    _current_mode = None


def reset_commerce_backend() -> None:
    global _current, _current_mode
    _current = None
    _current_mode = None
