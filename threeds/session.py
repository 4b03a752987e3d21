"""3DS authentication session lifecycle management.

The only component that creates sessions, interprets liveness, and
performs the single-use transition. Storage is delegated to a
SessionStore; session ids are cryptographically random
(secrets.token_urlsafe).
"""

import logging
import secrets
from datetime import timedelta

from threeds.config import CheckoutConfig
from threeds.exceptions import (
    InvalidSessionRequest,
    SessionAlreadyUsedError,
    SessionNotFoundError,
    PermanentStorageError,
    StorageError,
)
from threeds.store import SessionStore, UpdateOutcome
from threeds.types import (
    AuthenticationSession,
    BillingDetails,
    Money,
    SessionStatus,
    SetupPhaseData,
    ShippingDetails,
    TokenType,
)
from utils.clock import Clock, SystemClock
from utils.retry import call_with_retry

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(minutes=30)


class SessionManager:
    """Authentication session lifecycle management.

    Sessions are single-use and live for a fixed 30 minutes. Retrieval of
    an absent, expired, or used session is uniformly "absent".

    Constructed once per process and passed to the services that need it.
    """

    ID_PREFIX = "3ds_"

    def __init__(
        self,
        store: SessionStore,
        config: CheckoutConfig | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._config = config or CheckoutConfig()
        self._clock = clock or SystemClock()

    def _with_retry(self, fn, *args):
        """Retry transient StorageError with bounded exponential backoff."""
        return call_with_retry(
            fn,
            *args,
            retry_on=(StorageError,),
            give_up_on=(PermanentStorageError,),
            attempts=self._config.storage_retry_attempts,
            base_delay=self._config.storage_retry_base_delay_seconds,
            max_delay=self._config.storage_retry_max_delay_seconds,
        )

    def _generate_id(self) -> str:
        return f"{self.ID_PREFIX}{secrets.token_urlsafe(24)}"

    def create_session(
        self,
        cart_id: str,
        cart_version: int,
        payment_token: str,
        token_type: TokenType,
        billing_details: BillingDetails,
        total_amount: Money,
        shipping_details: ShippingDetails | None = None,
        setup_phase_data: SetupPhaseData | None = None,
        customer_id: str | None = None,
        anonymous_id: str | None = None,
    ) -> AuthenticationSession:
        """Create and persist a new pending session.

        Raises:
            InvalidSessionRequest: If not exactly one of customer_id /
                anonymous_id is given, or other fields are invalid.
            StorageError: If the store keeps failing after retries.
        """
        if bool(customer_id) == bool(anonymous_id):
            raise InvalidSessionRequest(
                "Exactly one of customer_id or anonymous_id must be provided"
            )
        if not cart_id:
            raise InvalidSessionRequest("cart_id is required")
        if not payment_token:
            raise InvalidSessionRequest("payment_token is required")

        now = self._clock.now()
        try:
            session = AuthenticationSession(
                id=self._generate_id(),
                cart_id=cart_id,
                cart_version=cart_version,
                payment_token=payment_token,
                token_type=token_type,
                billing_details=billing_details,
                shipping_details=shipping_details,
                setup_phase_data=setup_phase_data,
                created_at=now,
                expires_at=now + SESSION_TTL,
                status=SessionStatus.PENDING,
                customer_id=customer_id or None,
                anonymous_id=anonymous_id or None,
                total_amount=total_amount,
            )
        except ValueError as e:
            raise InvalidSessionRequest(str(e)) from e

        self._with_retry(self._store.put, session)

        logger.info(
            "Created 3DS session %s for cart %s (version %d)",
            session.id,
            cart_id,
            cart_version,
        )
        return session

    def get_session(self, session_id: str) -> AuthenticationSession | None:
        """Return the session only if it is pending and unexpired.

        Absent, expired and used all return None; callers cannot tell them apart.
        """
        session = self._with_retry(self._store.get, session_id)

        if session is None or not session.is_alive(self._clock.now()):
            return None

        return session

    def mark_used(self, session_id: str) -> None:
        """Atomically consume the session (pending -> used).

        Not retried on StorageError: after a transport failure the
        transition may or may not have happened.

        Raises:
            SessionAlreadyUsedError: Another request consumed it first.
            SessionNotFoundError: No live record for this id.
        """
        outcome = self._store.conditional_update_status(
            session_id,
            expected=SessionStatus.PENDING,
            new=SessionStatus.USED,
        )

        if outcome == UpdateOutcome.NOT_MATCHED:
            raise SessionAlreadyUsedError(session_id)
        if outcome == UpdateOutcome.ABSENT:
            raise SessionNotFoundError(session_id)

        logger.info("Consumed 3DS session %s", session_id)

    def delete_session(self, session_id: str) -> bool:
        """Remove the session. Safe to call with a nonexistent id."""
        deleted = self._with_retry(self._store.delete, session_id)
        if deleted:
            logger.info("Deleted 3DS session %s", session_id)
        return deleted

    def health_check(self) -> bool:
        """Delegate to the store."""
        return self._store.health_check()
