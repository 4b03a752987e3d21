"""Typed exceptions for 3DS checkout failures.

Every failure resolves to one of four user-facing buckets:
start over (ConflictError), not yours (ForbiddenError), fix and resubmit
(UnprocessableError) or contact support (InternalError). StorageError and
InvalidSessionRequest are infrastructure and caller bugs respectively.
"""

from enum import Enum


class UnprocessableReason(str, Enum):
    """Business-rule failures discovered after the session was validated."""

    CART_MODIFIED = "cart-modified"
    CART_INVALID = "cart-invalid"
    PAYMENT_DECLINED = "payment-declined"
    INSUFFICIENT_FUNDS = "insufficient-funds"
    CARD_EXPIRED = "card-expired"


class CheckoutError(Exception):
    """Base class for checkout/3DS errors."""


class InvalidSessionRequest(CheckoutError):
    """Malformed session creation input. Caller bug, not retryable."""


class ConflictError(CheckoutError):
    """
    Session absent, expired, or already used.

    Surfaced uniformly so callers cannot tell which of the three it was.
    Caller should restart checkout.
    """

    reason = "session-not-found"

    def __init__(self, session_id: str, message: str | None = None):
        self.session_id = session_id
        super().__init__(message or f"Authentication session not found or expired: {session_id}")


class SessionNotFoundError(ConflictError):
    """Atomic transition found no live record for the id."""


class SessionAlreadyUsedError(ConflictError):
    """
    Another request already consumed the session.

    Internal precision only. Externally indistinguishable from
    ConflictError so race timing is not leaked.
    """

    def __init__(self, session_id: str):
        super().__init__(session_id, f"Authentication session already used: {session_id}")


class ForbiddenError(CheckoutError):
    """Caller identity does not match the session's recorded owner. Never retryable."""

    reason = "ownership-violation"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Caller does not own authentication session: {session_id}")


class UnprocessableError(CheckoutError):
    """Legitimate business end-state (cart changed, payment declined, ...)."""

    def __init__(self, reason: UnprocessableReason, message: str | None = None):
        self.reason = reason
        super().__init__(message or f"Checkout cannot be completed: {reason.value}")


class StorageError(CheckoutError):
    """Session storage backend failed. Retryable with bounded backoff."""


class PermanentStorageError(StorageError):
    """
    Storage failure that repeats identically on every attempt.

    Id collisions and malformed records. Never retried.
    """


class InternalError(CheckoutError):
    """
    Failure after the session was irrevocably consumed.

    Covers order creation failing after payment capture and authorization
    timeouts. Always requires manual reconciliation.
    """

    def __init__(self, message: str, session_id: str | None = None):
        self.session_id = session_id
        super().__init__(message)
