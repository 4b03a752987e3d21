"""
Payment gateway client.

Talks JSON over HTTPS to the payment processor's capture and
authorization endpoints. Decline reasons are normalized onto the closed
DeclineReason set; anything unrecognized becomes a generic decline.
"""

import json
import logging

import requests

from threeds.types import (
    AuthorizationRequest,
    AuthorizationResult,
    CaptureRequest,
    CaptureResult,
    CaptureStatus,
    DeclineReason,
    SetupPhaseData,
)

logger = logging.getLogger(__name__)

_CAPTURE_STATUSES = {
    "AUTHORIZED": CaptureStatus.AUTHORIZED,
    "REQUIRES_3DS_VALIDATION": CaptureStatus.REQUIRES_3DS,
    "DECLINED": CaptureStatus.DECLINED,
}

_DECLINE_ALIASES = {
    "insufficient_funds": DeclineReason.INSUFFICIENT_FUNDS,
    "card_expired": DeclineReason.CARD_EXPIRED,
    "expired_card": DeclineReason.CARD_EXPIRED,
}


class PaymentGatewayError(Exception):
    """Raised when a payment gateway request fails."""


class PaymentTimeoutError(PaymentGatewayError, TimeoutError):
    """Gateway did not answer in time. Outcome at the processor is unknown."""


def normalize_decline_reason(raw: str | None) -> DeclineReason:
    """Map a processor decline code onto DeclineReason."""
    if not raw:
        return DeclineReason.GENERIC_DECLINE
    return _DECLINE_ALIASES.get(raw.strip().lower(), DeclineReason.GENERIC_DECLINE)


class PaymentGatewayClient:
    """HTTP client for the payment processor."""

    def __init__(self, gateway_url: str, api_key: str, timeout_seconds: float = 10):
        """
        Args:
            gateway_url: Base URL of the gateway (no trailing slash needed)
            api_key: API key for the X-API-Key header
            timeout_seconds: Per-request timeout

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")

        self.gateway_url = gateway_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    def _post(self, path: str, payload: dict) -> dict:
        """
        POST JSON and return the decoded body.

        Raises:
            PaymentTimeoutError: On request timeout
            PaymentGatewayError: On any other failure
        """
        url = f"{self.gateway_url}{path}"
        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
        }

        try:
            response = requests.post(
                url,
                data=json.dumps(payload, separators=(",", ":")),
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.Timeout as e:
            logger.error("Payment gateway timed out on %s", path)
            raise PaymentTimeoutError(f"Timed out calling {path}") from e
        except requests.exceptions.RequestException as e:
            logger.error("Payment gateway connection failed: %s", e)
            raise PaymentGatewayError(f"Connection failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Payment gateway returned invalid JSON (status %d)", response.status_code)
            raise PaymentGatewayError("Invalid response from gateway") from e

        if response.status_code >= 400:
            message = data.get("message", "Unknown error") if isinstance(data, dict) else "Unknown error"
            logger.error("Payment gateway error %d: %s", response.status_code, message)
            raise PaymentGatewayError(f"Gateway error {response.status_code}: {message}")

        return data

    def capture(self, request: CaptureRequest) -> CaptureResult:
        """Initial capture. May return REQUIRES_3DS with an opaque challenge."""
        data = self._post("/captures", request.model_dump(mode="json", exclude_none=True))

        status = _CAPTURE_STATUSES.get(data.get("status"))
        if status is None:
            raise PaymentGatewayError(f"Unknown capture status: {data.get('status')!r}")

        setup = data.get("setup_data")
        return CaptureResult(
            status=status,
            transaction_id=data.get("transaction_id"),
            authorization_code=data.get("authorization_code"),
            decline_reason=(
                normalize_decline_reason(data.get("decline_reason"))
                if status == CaptureStatus.DECLINED
                else None
            ),
            challenge=data.get("challenge_info"),
            setup_phase_data=SetupPhaseData.model_validate(setup) if setup else None,
        )

    def authorize(self, request: AuthorizationRequest) -> AuthorizationResult:
        """Authorize with 3DS completion data."""
        data = self._post("/authorizations", request.model_dump(mode="json", exclude_none=True))

        authorized = data.get("status") == "AUTHORIZED"
        result = AuthorizationResult(
            authorized=authorized,
            transaction_id=data.get("transaction_id"),
            authorization_code=data.get("authorization_code"),
            decline_reason=None if authorized else normalize_decline_reason(data.get("decline_reason")),
        )
        logger.info(
            "Authorization %s (transaction %s)",
            "approved" if authorized else "declined",
            result.transaction_id,
        )
        return result
