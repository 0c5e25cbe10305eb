from __future__ import annotations

from pydantic import BaseModel

from services.storefront.app.models.checkout import ShippingSelection


class ShippingOptionsResponse(BaseModel):
    postal_code: str
    options: list[ShippingSelection]
