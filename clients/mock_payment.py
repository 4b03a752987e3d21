"""
Mock payment backend - simulated processing for development and demos.

No gateway is called. Behaviour is driven by the request:
- capture: cents of .99 require 3DS, .50 are declined (insufficient
  funds), everything else is authorized
- authorize: authentication result N or U declines, anything else
  authorizes
"""

import logging
import secrets
from decimal import Decimal

from threeds.types import (
    AuthorizationRequest,
    AuthorizationResult,
    CaptureRequest,
    CaptureResult,
    CaptureStatus,
    DeclineReason,
    SetupPhaseData,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def _token(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(6)}"


class MockPaymentProvider:
    """Deterministic stand-in for PaymentGatewayClient."""

    CHALLENGE_URL = "https://centinelapi.cardinalcommerce.com/V2/Cruise/StepUp"
    ACS_URL = "https://acs.issuer.example/3ds/acs/challenge"

    def capture(self, request: CaptureRequest) -> CaptureResult:
        cents = (request.amount.amount % 1).quantize(Decimal("0.01"))
        transaction_id = _token("mock_tx")

        if cents == Decimal("0.99"):
            logger.info("Mock capture: 3DS required for %s", request.order_reference)
            return CaptureResult(
                status=CaptureStatus.REQUIRES_3DS,
                transaction_id=transaction_id,
                challenge={
                    "step_up_url": self.CHALLENGE_URL,
                    "step_up_token": _token("mock_jwt"),
                    "acs_url": self.ACS_URL,
                    "authentication_transaction_id": _token("mock_auth"),
                    "issued_at": now_utc().isoformat(),
                },
                setup_phase_data=request.setup_phase_data or SetupPhaseData(
                    reference_id=_token("mock_ref"),
                ),
            )

        if cents == Decimal("0.50"):
            logger.info("Mock capture: declined for %s", request.order_reference)
            return CaptureResult(
                status=CaptureStatus.DECLINED,
                transaction_id=transaction_id,
                decline_reason=DeclineReason.INSUFFICIENT_FUNDS,
            )

        logger.info("Mock capture: authorized for %s", request.order_reference)
        return CaptureResult(
            status=CaptureStatus.AUTHORIZED,
            transaction_id=transaction_id,
            authorization_code=_token("mock_auth").upper(),
        )

    def authorize(self, request: AuthorizationRequest) -> AuthorizationResult:
        result = (request.challenge.authentication_result or "").upper()

        if result in ("N", "U"):
            logger.info("Mock authorize: 3DS authentication failed (%s)", result)
            return AuthorizationResult(
                authorized=False,
                transaction_id=request.challenge.transaction_id,
                decline_reason=DeclineReason.GENERIC_DECLINE,
            )

        return AuthorizationResult(
            authorized=True,
            transaction_id=request.challenge.transaction_id,
            authorization_code=_token("mock_auth").upper(),
        )
