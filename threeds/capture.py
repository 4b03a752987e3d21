"""Initial token capture - the first of the two checkout calls.

Attempts payment. If the processor asks for a 3DS challenge, freezes the
checkout context in a new AuthenticationSession and hands back its id
with the opaque challenge payload.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from threeds.collaborators import OrderService, PaymentProvider
from threeds.exceptions import InternalError, InvalidSessionRequest
from threeds.orchestrator import declined_error
from threeds.session import SessionManager
from threeds.types import (
    AuthorizationResult,
    CaptureRequest,
    CaptureStatus,
    Order,
    OrderRequest,
    PaymentBillTo,
    TokenCaptureBody,
)
from utils.caller_context import CallerContext

logger = logging.getLogger(__name__)


class CaptureOutcomeStatus(str, Enum):
    COMPLETED = "completed"
    CHALLENGE_REQUIRED = "challenge_required"


@dataclass
class CaptureOutcome:
    """Result of initial capture: either an order, or a pending 3DS session."""

    status: CaptureOutcomeStatus
    order: Order | None = None
    authorization: AuthorizationResult | None = None
    session_id: str | None = None
    challenge: dict[str, Any] | None = None


class InitialCaptureService:
    """Orchestrates the initial payment attempt."""

    def __init__(
        self,
        session_manager: SessionManager,
        payment_provider: PaymentProvider,
        order_service: OrderService,
    ):
        self._sessions = session_manager
        self._payments = payment_provider
        self._orders = order_service

    def capture(self, body: TokenCaptureBody, caller: CallerContext) -> CaptureOutcome:
        """Attempt payment for a cart.

        Flow:
        1. Check the caller is identified by exactly one principal
        2. Call the processor's capture
        3. AUTHORIZED -> create the order
        4. REQUIRES_3DS -> create a session, return its id + challenge
        5. DECLINED -> UnprocessableError with the mapped reason

        Raises:
            InvalidSessionRequest: Caller has no principal, or both.
            UnprocessableError: Payment declined.
            InternalError: 3DS required but no challenge info, or order
                creation failed after authorization.
        """
        if bool(caller.customer_id) == bool(caller.anonymous_id):
            raise InvalidSessionRequest(
                "Caller must be identified by exactly one of customer_id or anonymous_id"
            )

        result = self._payments.capture(
            CaptureRequest(
                order_reference=body.cart_id,
                amount=body.total_amount,
                payment_token=body.payment_token,
                token_type=body.token_type,
                bill_to=PaymentBillTo.from_billing(body.billing_details),
                setup_phase_data=body.setup_phase_data,
                client_ip=caller.source_address,
                user_agent=caller.user_agent,
            )
        )

        if result.status == CaptureStatus.DECLINED:
            logger.info("Initial capture declined for cart %s", body.cart_id)
            raise declined_error(result.decline_reason)

        if result.status == CaptureStatus.REQUIRES_3DS:
            return self._start_challenge(body, caller, result.challenge, result.setup_phase_data)

        authorization = AuthorizationResult(
            authorized=True,
            transaction_id=result.transaction_id,
            authorization_code=result.authorization_code,
        )
        try:
            order = self._orders.create_order(
                OrderRequest(
                    cart_id=body.cart_id,
                    cart_version=body.cart_version,
                    customer_id=caller.customer_id,
                    anonymous_id=caller.anonymous_id,
                    authorization=authorization,
                )
            )
        except Exception as e:
            logger.critical(
                "RECONCILIATION REQUIRED cart=%s transaction=%s: order creation failed after capture: %s",
                body.cart_id,
                result.transaction_id,
                e,
            )
            raise InternalError("Order creation failed after payment was authorized") from e

        return CaptureOutcome(
            status=CaptureOutcomeStatus.COMPLETED,
            order=order,
            authorization=authorization,
        )

    def _start_challenge(self, body, caller, challenge, setup_phase_data) -> CaptureOutcome:
        if not challenge:
            logger.error("3DS required for cart %s but challenge info is missing", body.cart_id)
            raise InternalError("3DS validation required but challenge information is unavailable")

        session = self._sessions.create_session(
            cart_id=body.cart_id,
            cart_version=body.cart_version,
            payment_token=body.payment_token,
            token_type=body.token_type,
            billing_details=body.billing_details,
            total_amount=body.total_amount,
            shipping_details=body.shipping_details,
            setup_phase_data=setup_phase_data or body.setup_phase_data,
            customer_id=caller.customer_id,
            anonymous_id=caller.anonymous_id,
        )

        return CaptureOutcome(
            status=CaptureOutcomeStatus.CHALLENGE_REQUIRED,
            session_id=session.id,
            challenge=challenge,
        )
