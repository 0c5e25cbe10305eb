from __future__ import annotations

import re
from decimal import Decimal

from services.storefront.app.models.checkout import ShippingSelection

_PIN_RE = re.compile(r"^\d{6}$")


class InvalidPostalCodeError(ValueError):
    def __init__(self, postal_code: str) -> None:
        super().__init__(f"Please enter a valid 6-digit PIN code for shipping (got {postal_code!r})")
        self.postal_code = postal_code


def quote_shipping_options(postal_code: str) -> list[ShippingSelection]:
    """Return the shipping options available for a delivery PIN code.

    There is a single flat-rate option today; no carrier lookup is made.
    """

    pin = (postal_code or "").strip()
    if not _PIN_RE.match(pin):
        raise InvalidPostalCodeError(pin)

    return [
        ShippingSelection(
            method_id="standard_delivery",
            label="Standard Delivery",
            price=Decimal("100.00"),
            estimated_delivery_label="3-7 business days",
            code="standard",
            postal_code=pin,
        )
    ]
