"""
Validate-capture orchestration.

Turns "session id + challenge-completion data" into either a created
order or a typed failure:

    RETRIEVING -> OWNERSHIP_CHECK -> CART_CHECK -> AUTHORIZING
               -> FINALIZING -> COMPLETE | FAILED

The session is consumed (pending -> used) before the payment processor
is called. That atomic transition is the only guard against two
concurrent completions both reaching the processor. A consumed session
is never restored, whatever happens afterwards.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from threeds.collaborators import CartService, OrderService, PaymentProvider
from threeds.config import CheckoutConfig
from threeds.exceptions import (
    ConflictError,
    InternalError,
    UnprocessableError,
    UnprocessableReason,
)
from threeds.security_logger import SecurityEvent, SecurityLogger, Severity
from threeds.session import SessionManager
from threeds.types import (
    AuthenticationSession,
    AuthorizationRequest,
    AuthorizationResult,
    ChallengeCompletion,
    DeclineReason,
    Order,
    OrderRequest,
    PaymentBillTo,
    TokenType,
)
from threeds.validator import SessionValidator
from utils.background import BackgroundTasks, call_with_timeout
from utils.caller_context import CallerContext

logger = logging.getLogger(__name__)


class OrchestrationState(str, Enum):
    """Steps of one validate-capture invocation. Never re-entered."""

    RETRIEVING = "retrieving"
    OWNERSHIP_CHECK = "ownership_check"
    CART_CHECK = "cart_check"
    AUTHORIZING = "authorizing"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"


DECLINE_REASON_CODES = {
    DeclineReason.GENERIC_DECLINE: UnprocessableReason.PAYMENT_DECLINED,
    DeclineReason.INSUFFICIENT_FUNDS: UnprocessableReason.INSUFFICIENT_FUNDS,
    DeclineReason.CARD_EXPIRED: UnprocessableReason.CARD_EXPIRED,
}


def declined_error(reason: DeclineReason | None) -> UnprocessableError:
    """Map a processor decline reason 1:1 onto an UnprocessableError."""
    code = DECLINE_REASON_CODES.get(reason, UnprocessableReason.PAYMENT_DECLINED)
    return UnprocessableError(code, f"Payment declined: {code.value}")


@dataclass
class ValidateCaptureOutcome:
    """Result of a successful validate-capture."""

    session_id: str
    order: Order
    authorization: AuthorizationResult


def build_authorization_request(
    session: AuthenticationSession,
    completion: ChallengeCompletion,
) -> AuthorizationRequest:
    """Merge session-stored payment context with challenge-completion data."""
    return AuthorizationRequest(
        payment_token=session.payment_token,
        token_type=session.token_type,
        customer_id=session.customer_id if session.token_type == TokenType.STORED else None,
        bill_to=PaymentBillTo.from_billing(session.billing_details),
        amount=session.total_amount,
        challenge=completion,
    )


class ValidateCaptureOrchestrator:
    """Completes a payment after the customer finished the 3DS challenge.

    All collaborators are injected; one instance serves every request in
    the process.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        validator: SessionValidator,
        cart_service: CartService,
        payment_provider: PaymentProvider,
        order_service: OrderService,
        security_logger: SecurityLogger,
        background: BackgroundTasks,
        config: CheckoutConfig | None = None,
    ):
        self._sessions = session_manager
        self._validator = validator
        self._carts = cart_service
        self._payments = payment_provider
        self._orders = order_service
        self._security_logger = security_logger
        self._background = background
        self._config = config or CheckoutConfig()

    def validate_capture(
        self,
        session_id: str,
        completion: ChallengeCompletion,
        caller: CallerContext,
    ) -> ValidateCaptureOutcome:
        """Run the full validate-capture sequence.

        Raises:
            ConflictError: Session absent, expired or already used.
            ForbiddenError: Caller does not own the session.
            UnprocessableError: Cart modified/invalid or payment declined.
            InternalError: Authorization timed out or order creation failed
                after the session was consumed.
            StorageError: Session storage unavailable.
        """
        state = OrchestrationState.RETRIEVING
        try:
            session = self._sessions.get_session(session_id)
            if session is None:
                raise ConflictError(session_id)

            state = OrchestrationState.OWNERSHIP_CHECK
            self._validator.validate_ownership(session, caller)

            state = OrchestrationState.CART_CHECK
            cart = self._carts.get_cart(session.cart_id)
            self._validator.validate_cart_freshness(session, cart)

            state = OrchestrationState.AUTHORIZING
            self._consume(session, caller)
            authorization = self._authorize(session, completion)

            state = OrchestrationState.FINALIZING
            order = self._create_order(session, authorization)
        except Exception as e:
            failed_at = state
            state = OrchestrationState.FAILED
            logger.warning(
                "validate-capture %s for session %s at %s: %s",
                state.value,
                session_id,
                failed_at.value,
                type(e).__name__,
            )
            raise

        state = OrchestrationState.COMPLETE

        self._background.submit(
            self._cleanup,
            session.id,
            description=f"delete 3DS session {session.id}",
        )

        logger.info(
            "validate-capture %s for session %s: order %s",
            state.value,
            session.id,
            order.id,
        )
        return ValidateCaptureOutcome(
            session_id=session.id,
            order=order,
            authorization=authorization,
        )

    def _consume(self, session: AuthenticationSession, caller: CallerContext) -> None:
        """Single-use guard. Losers of a race surface as ConflictError."""
        try:
            self._sessions.mark_used(session.id)
        except ConflictError:
            try:
                self._security_logger.log(
                    SecurityEvent.SESSION_REPLAY_REJECTED,
                    Severity.WARNING,
                    session_id=session.id,
                    recorded_owner=session.customer_id or session.anonymous_id,
                    attempted_by=caller.principal,
                    ip_address=caller.source_address,
                    user_agent=caller.user_agent,
                )
            except Exception:
                logger.exception("Failed to write replay audit record for %s", session.id)
            raise

    def _authorize(
        self,
        session: AuthenticationSession,
        completion: ChallengeCompletion,
    ) -> AuthorizationResult:
        """Call the processor with a bounded timeout. Declines are final.

        Any TimeoutError, whether from the bound here or from the
        processor client, means the outcome is unknown and becomes an
        InternalError. Other processor failures count as declines.
        """
        request = build_authorization_request(session, completion)
        timeout = self._config.authorization_timeout_seconds

        try:
            result = call_with_timeout(self._payments.authorize, timeout, request)
        except TimeoutError as e:
            self._reconciliation_alert(
                SecurityEvent.AUTHORIZATION_TIMEOUT,
                session,
                f"Payment authorization timed out after {timeout}s",
            )
            raise InternalError(
                "Payment authorization timed out; session already consumed",
                session_id=session.id,
            ) from e
        except Exception as e:
            logger.warning("Payment authorization failed for session %s: %s", session.id, e)
            raise declined_error(None) from e

        if not result.authorized:
            logger.info(
                "Payment declined for session %s: %s",
                session.id,
                result.decline_reason.value if result.decline_reason else "unspecified",
            )
            raise declined_error(result.decline_reason)

        return result

    def _create_order(
        self,
        session: AuthenticationSession,
        authorization: AuthorizationResult,
    ) -> Order:
        """Payment is captured at this point; failure needs a human."""
        try:
            return self._orders.create_order(
                OrderRequest(
                    cart_id=session.cart_id,
                    cart_version=session.cart_version,
                    customer_id=session.customer_id,
                    anonymous_id=session.anonymous_id,
                    authorization=authorization,
                )
            )
        except Exception as e:
            self._reconciliation_alert(
                SecurityEvent.CAPTURED_WITHOUT_ORDER,
                session,
                f"Order creation failed after payment capture: {e}",
                transaction_id=authorization.transaction_id,
            )
            raise InternalError(
                "Order creation failed after payment was authorized",
                session_id=session.id,
            ) from e

    def _reconciliation_alert(
        self,
        event: SecurityEvent,
        session: AuthenticationSession,
        message: str,
        transaction_id: str | None = None,
    ) -> None:
        logger.critical(
            "RECONCILIATION REQUIRED session=%s cart=%s transaction=%s: %s",
            session.id,
            session.cart_id,
            transaction_id,
            message,
        )
        try:
            self._security_logger.log(
                event,
                Severity.CRITICAL,
                session_id=session.id,
                recorded_owner=session.customer_id or session.anonymous_id,
                details={
                    "cart_id": session.cart_id,
                    "cart_version": session.cart_version,
                    "transaction_id": transaction_id,
                    "message": message,
                },
            )
        except Exception:
            logger.exception("Failed to write reconciliation audit record for %s", session.id)

    def _cleanup(self, session_id: str) -> None:
        """Best-effort; TTL removes the record anyway."""
        self._sessions.delete_session(session_id)
