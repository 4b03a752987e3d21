"""Contracts for the external services the checkout core depends on.

Concrete implementations live in clients/ (HTTP clients and the mock
payment backend). Tests substitute Mock(spec=...) objects.
"""

from typing import Protocol

from threeds.types import (
    AuthorizationRequest,
    AuthorizationResult,
    Cart,
    CaptureRequest,
    CaptureResult,
    Order,
    OrderRequest,
)


class CartService(Protocol):
    """Read access to live carts."""

    def get_cart(self, cart_id: str) -> Cart | None:
        """Current cart snapshot, or None if the cart does not exist."""
        ...


class PaymentProvider(Protocol):
    """Payment processor capabilities."""

    def capture(self, request: CaptureRequest) -> CaptureResult:
        """Initial payment attempt. May report that a 3DS challenge is required."""
        ...

    def authorize(self, request: AuthorizationRequest) -> AuthorizationResult:
        """Authorize after the customer completed the 3DS challenge."""
        ...


class OrderService(Protocol):
    """Order creation."""

    def create_order(self, request: OrderRequest) -> Order:
        ...
