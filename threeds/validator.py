"""Ownership and cart-freshness checks for 3DS sessions.

The checks themselves are pure. The one side effect is the audit record
written for every ownership violation.
"""

import logging

from threeds.exceptions import ForbiddenError, UnprocessableError, UnprocessableReason
from threeds.security_logger import SecurityEvent, SecurityLogger, Severity
from threeds.types import AuthenticationSession, Cart
from utils.caller_context import CallerContext

logger = logging.getLogger(__name__)


class SessionValidator:
    """Compares a session against the calling context and the live cart."""

    def __init__(self, security_logger: SecurityLogger):
        self._security_logger = security_logger

    def validate_ownership(self, session: AuthenticationSession, caller: CallerContext) -> None:
        """Caller must be the principal that created the session.

        A customer-owned session needs a matching customer_id; a guest
        session needs a matching anonymous_id. An anonymous caller never
        matches a customer-owned session and vice versa.

        Raises:
            ForbiddenError: On any mismatch (after writing an audit record).
        """
        if session.customer_id is not None:
            recorded_owner = session.customer_id
            owns = caller.customer_id == session.customer_id
        else:
            recorded_owner = session.anonymous_id
            owns = caller.anonymous_id == session.anonymous_id

        if owns:
            return

        logger.warning(
            "Ownership violation on session %s: owner=%s attempted_by=%s",
            session.id,
            recorded_owner,
            caller.principal,
        )
        try:
            self._security_logger.log(
                SecurityEvent.OWNERSHIP_VIOLATION,
                Severity.HIGH,
                session_id=session.id,
                recorded_owner=recorded_owner,
                attempted_by=caller.principal,
                ip_address=caller.source_address,
                user_agent=caller.user_agent,
                details={
                    "owner_kind": "customer" if session.customer_id else "anonymous",
                    "caller_kind": "customer" if caller.customer_id else "anonymous",
                },
            )
        except Exception:
            logger.exception("Failed to write ownership violation audit record for %s", session.id)

        raise ForbiddenError(session.id)

    def validate_cart_freshness(self, session: AuthenticationSession, cart: Cart | None) -> None:
        """Live cart must exist, be at the session's version, and be checkout-eligible.

        Raises:
            UnprocessableError: cart-modified if the version moved;
                cart-invalid if the cart is missing, empty or closed.
        """
        if cart is None:
            raise UnprocessableError(
                UnprocessableReason.CART_INVALID,
                f"Cart {session.cart_id} not found",
            )

        if cart.version != session.cart_version:
            raise UnprocessableError(
                UnprocessableReason.CART_MODIFIED,
                f"Cart {session.cart_id} changed (version {session.cart_version} -> {cart.version})",
            )

        if not cart.is_checkout_eligible:
            raise UnprocessableError(
                UnprocessableReason.CART_INVALID,
                f"Cart {session.cart_id} is empty or not eligible for checkout",
            )
