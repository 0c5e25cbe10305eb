from __future__ import annotations

from fastapi import APIRouter, HTTPException

from services.storefront.app.models.shipping import ShippingOptionsResponse
from services.storefront.app.services.shipping import InvalidPostalCodeError, quote_shipping_options

router = APIRouter()


@router.get("/v1/shipping/options", response_model=ShippingOptionsResponse)
def list_shipping_options(postal_code: str) -> ShippingOptionsResponse:
    try:
        options = quote_shipping_options(postal_code)
    except InvalidPostalCodeError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    return ShippingOptionsResponse(postal_code=postal_code.strip(), options=options)
