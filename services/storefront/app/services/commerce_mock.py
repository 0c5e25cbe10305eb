from __future__ import annotations

from uuid import uuid4

from services.storefront.app.services.commerce_base import (
    CommerceAdapterError,
    CommerceOrder,
    CommerceOrderRequest,
    CommerceRejectedError,
    CommerceTimeoutError,
)


class MockCommerceBackend:
    """In-process commerce backend for tests and local dev.

    Dedupes on the gateway payment reference, like the real backend is required to.
    """

    name = "mock"

    def __init__(self) -> None:
        self.failure: str | None = None
        self.failures_remaining = 0
        self.calls: list[CommerceOrderRequest] = []
        self.orders: dict[str, CommerceOrder] = {}
        self._next_number = 1001

    def configure(self, failure: str | None = None, times: int = 1) -> None:
        """Fail the next `times` create_order calls with "timeout", "rejected" or "error"."""
        self.failure = failure
        self.failures_remaining = times if failure is not None else 0

    def create_order(self, request: CommerceOrderRequest) -> CommerceOrder:
        self.calls.append(request)

        if self.failure is not None and self.failures_remaining > 0:
            self.failures_remaining -= 1
            failure = self.failure
            if self.failures_remaining == 0:
                self.failure = None
            if failure == "timeout":
                raise CommerceTimeoutError(15)
            if failure == "rejected":
                raise CommerceRejectedError(422, "line_items: variant is unavailable")
            raise CommerceAdapterError(f"Mock commerce failure: {failure}")

        reference = request.payment.gateway_reference
        existing = self.orders.get(reference)
        if existing is not None:
            return existing

        order_id = uuid4().hex[:12]
        order = CommerceOrder(
            order_id=order_id,
            order_number=str(self._next_number),
            confirmation_url=f"https://shop.example/orders/{order_id}/status",
        )
        self._next_number += 1
        self.orders[reference] = order
        return order
