from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class CartLine(BaseModel):
    product_id: str
    variant_id: str
    title: str = ""
    # Quantity and price rules are owned by the amount calculator, not the schema.
    unit_price: Decimal
    quantity: int


class ShippingSelection(BaseModel):
    method_id: str
    label: str
    price: Decimal
    estimated_delivery_label: str = ""
    code: str = "standard"

    # Postal code the rate was quoted for. A selection is only valid for that address.
    postal_code: str | None = None


class ShippingAddress(BaseModel):
    first_name: str
    last_name: str = ""
    address1: str
    address2: str = ""
    city: str
    province: str = ""
    country: str = "India"
    zip: str
    phone: str
    country_code: str = "IN"


class ContactInfo(BaseModel):
    email: str = Field(..., min_length=3)
    full_name: str = ""
    phone: str = ""


class CheckoutRequest(BaseModel):
    client_id: str = Field(..., min_length=1)
    contact: ContactInfo
    shipping_address: ShippingAddress
    shipping_selection: ShippingSelection | None = None
    cart: list[CartLine] = Field(default_factory=list)

    # Set when the client re-submits after the widget was prepared for an earlier attempt.
    attempt_id: str | None = None


class PaymentConfirmation(BaseModel):
    gateway_order_id: str = ""
    gateway_payment_id: str = ""
    signature: str = ""


class PaymentFailure(BaseModel):
    error_description: str = "Payment failed"
    error_code: str | None = None
    gateway_payment_id: str | None = None


class PendingSettlementAction(BaseModel):
    client_id: str = Field(..., min_length=1)
