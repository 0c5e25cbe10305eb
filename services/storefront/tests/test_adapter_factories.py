import pytest

from services.storefront.app.services.commerce_factory import get_commerce_backend
from services.storefront.app.services.gateway_factory import get_payment_gateway


def test_get_payment_gateway_defaults_to_mock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STOREFRONT_GATEWAY_ADAPTER", raising=False)
    gateway = get_payment_gateway()
    assert gateway.name == "mock"
    assert get_payment_gateway() is gateway


def test_get_payment_gateway_rejects_unknown(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STOREFRONT_GATEWAY_ADAPTER", "nope")
    with pytest.raises(ValueError, match="Unknown STOREFRONT_GATEWAY_ADAPTER"):
        get_payment_gateway()


def test_razorpay_requires_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STOREFRONT_GATEWAY_ADAPTER", "razorpay")
    monkeypatch.delenv("STOREFRONT_RAZORPAY_KEY_ID", raising=False)
    monkeypatch.delenv("STOREFRONT_RAZORPAY_KEY_SECRET", raising=False)
    with pytest.raises(ValueError, match="STOREFRONT_RAZORPAY_KEY_SECRET"):
        get_payment_gateway()


def test_razorpay_selected_when_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STOREFRONT_GATEWAY_ADAPTER", "razorpay")
    monkeypatch.setenv("STOREFRONT_RAZORPAY_KEY_ID", "rzp_test_123")
    monkeypatch.setenv("STOREFRONT_RAZORPAY_KEY_SECRET", "secret")
    gateway = get_payment_gateway()
    assert gateway.name == "razorpay"
    assert gateway.key_id == "rzp_test_123"


def test_get_commerce_backend_defaults_to_mock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STOREFRONT_COMMERCE_ADAPTER", raising=False)
    assert get_commerce_backend().name == "mock"


def test_get_commerce_backend_rejects_unknown(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STOREFRONT_COMMERCE_ADAPTER", "magento")
    with pytest.raises(ValueError, match="Unknown STOREFRONT_COMMERCE_ADAPTER"):
        get_commerce_backend()


def test_shopify_requires_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STOREFRONT_COMMERCE_ADAPTER", "shopify")
    monkeypatch.delenv("STOREFRONT_SHOPIFY_STORE", raising=False)
    monkeypatch.delenv("STOREFRONT_SHOPIFY_ACCESS_TOKEN", raising=False)
    with pytest.raises(ValueError, match="STOREFRONT_SHOPIFY_STORE"):
        get_commerce_backend()


def test_switching_mode_rebuilds_adapter(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STOREFRONT_COMMERCE_ADAPTER", "mock")
    mock = get_commerce_backend()

    monkeypatch.setenv("STOREFRONT_COMMERCE_ADAPTER", "shopify")
    monkeypatch.setenv("STOREFRONT_SHOPIFY_STORE", "https://demo.myshopify.com/")
    monkeypatch.setenv("STOREFRONT_SHOPIFY_ACCESS_TOKEN", "shpat_x")
    shopify = get_commerce_backend()

    assert shopify is not mock
    assert shopify.name == "shopify"
