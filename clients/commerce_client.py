"""
Cart and order service client.

Fail-fast: every transport or protocol failure raises
CommerceServiceError. A missing cart is not a failure (returns None).
"""

import logging

import requests

from threeds.types import Cart, Order, OrderRequest

logger = logging.getLogger(__name__)


class CommerceServiceError(Exception):
    """Raised when the cart/order service request fails."""


class CommerceClient:
    """HTTP client for the commerce platform's cart and order APIs."""

    def __init__(self, base_url: str, api_key: str, timeout_seconds: float = 5):
        if not base_url:
            raise ValueError("base_url is required")
        if not api_key:
            raise ValueError("api_key is required")

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session = requests.Session()
        self._session.headers.update({
            "Accept": "application/json",
            "X-API-Key": api_key,
        })

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return self._session.request(
                method,
                f"{self.base_url}{path}",
                timeout=self.timeout_seconds,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Commerce service %s %s failed: %s", method, path, e)
            raise CommerceServiceError(f"Connection failed: {e}") from e

    def get_cart(self, cart_id: str) -> Cart | None:
        """
        Fetch the live cart.

        Returns None if the service reports 404.
        """
        response = self._request("GET", f"/carts/{cart_id}")

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise CommerceServiceError(f"Cart lookup failed with status {response.status_code}")

        try:
            return Cart.model_validate(response.json())
        except ValueError as e:
            raise CommerceServiceError(f"Invalid cart payload for {cart_id}") from e

    def create_order(self, request: OrderRequest) -> Order:
        """Create an order from an authorized cart."""
        response = self._request(
            "POST",
            "/orders",
            json=request.model_dump(mode="json"),
        )

        if response.status_code not in (200, 201):
            raise CommerceServiceError(f"Order creation failed with status {response.status_code}")

        try:
            order = Order.model_validate(response.json())
        except ValueError as e:
            raise CommerceServiceError("Invalid order payload") from e

        logger.info("Order %s created for cart %s", order.id, request.cart_id)
        return order

    def close(self) -> None:
        self._session.close()
