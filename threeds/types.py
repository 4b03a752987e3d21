"""Pydantic models for the 3DS checkout domain."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, EmailStr, Field, model_validator


class SessionStatus(str, Enum):
    """
    Stored session status.

    Only pending -> used. "Expired" is derived from expires_at, never stored.
    """

    PENDING = "pending"
    USED = "used"


class TokenType(str, Enum):
    """Payment instrument token kind."""

    TRANSIENT = "transient"
    STORED = "stored"


class DeclineReason(str, Enum):
    """Closed set of decline reasons the payment collaborator reports."""

    GENERIC_DECLINE = "generic_decline"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CARD_EXPIRED = "card_expired"


class Money(BaseModel):
    """Amount in major units plus ISO 4217 currency code."""

    amount: Decimal = Field(..., ge=0, decimal_places=2)
    currency: str = Field(..., pattern=r"^[A-Z]{3}$")


class PaymentAddress(BaseModel):
    """ISO 19160-style postal address."""

    address1: str = Field(..., min_length=1, max_length=255)
    address2: str | None = Field(None, max_length=255)
    locality: str = Field(..., min_length=1, max_length=255)
    administrative_area: str | None = Field(None, max_length=255)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., pattern=r"^[A-Z]{2}$")


class BillingDetails(BaseModel):
    """Billing contact and address."""

    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    address: PaymentAddress


class ShippingDetails(BaseModel):
    """Shipping contact and address (absent for digital goods)."""

    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    phone: str | None = Field(None, max_length=50)
    address: PaymentAddress


class SetupPhaseData(BaseModel):
    """3DS setup-phase payload. Passed through verbatim, never interpreted."""

    reference_id: str
    authentication_information: dict[str, Any] | None = None


class AuthenticationSession(BaseModel):
    """
    Frozen payment/cart context bridging initial capture and validate-capture.

    Single-use, 30-minute lifetime, owned by exactly one principal.
    """

    id: str = Field(..., description="Opaque session identifier")
    cart_id: str
    cart_version: int = Field(..., ge=0)
    payment_token: str = Field(..., repr=False)
    token_type: TokenType
    billing_details: BillingDetails
    shipping_details: ShippingDetails | None = None
    setup_phase_data: SetupPhaseData | None = None
    created_at: datetime
    expires_at: datetime
    status: SessionStatus
    customer_id: str | None = None
    anonymous_id: str | None = None
    total_amount: Money

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def require_exactly_one_owner(self) -> "AuthenticationSession":
        """Ensure exactly one of customer_id / anonymous_id is set."""
        if bool(self.customer_id) == bool(self.anonymous_id):
            raise ValueError("Exactly one of customer_id or anonymous_id is required")
        return self

    def is_alive(self, now: datetime) -> bool:
        """Retrievable only while pending and strictly before expires_at."""
        return self.status == SessionStatus.PENDING and now < self.expires_at


# =============================================================================
# COLLABORATOR PAYLOADS
# =============================================================================


class CartLineItem(BaseModel):
    """One line of a live cart snapshot."""

    id: str
    sku: str | None = None
    quantity: int = Field(..., ge=0)


class Cart(BaseModel):
    """Live cart snapshot from the cart service."""

    id: str
    version: int = Field(..., ge=0)
    line_items: list[CartLineItem] = Field(default_factory=list)
    state: str = "active"
    total: Money | None = None

    @property
    def is_checkout_eligible(self) -> bool:
        """Non-empty and still open for checkout."""
        return self.state == "active" and any(item.quantity > 0 for item in self.line_items)


class ChallengeCompletion(BaseModel):
    """Data returned by the issuer after the customer completes the challenge."""

    transaction_id: str = Field(..., min_length=1)
    cryptogram: str | None = Field(None, description="CAVV or equivalent")
    eci_indicator: str | None = None
    authentication_result: str | None = Field(None, description="Legacy Y/N/A/U result")
    xid: str | None = Field(None, description="Legacy 3DS 1.x transaction id")


class PaymentBillTo(BaseModel):
    """Billing details in the flat shape the payment processor expects."""

    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    address1: str
    address2: str | None = None
    locality: str
    administrative_area: str | None = None
    postal_code: str
    country: str

    @classmethod
    def from_billing(cls, billing: BillingDetails) -> "PaymentBillTo":
        return cls(
            first_name=billing.first_name,
            last_name=billing.last_name,
            email=billing.email,
            phone=billing.phone,
            address1=billing.address.address1,
            address2=billing.address.address2,
            locality=billing.address.locality,
            administrative_area=billing.address.administrative_area,
            postal_code=billing.address.postal_code,
            country=billing.address.country,
        )


class AuthorizationRequest(BaseModel):
    """Session-stored fields merged with challenge-completion data."""

    payment_token: str = Field(..., repr=False)
    token_type: TokenType
    customer_id: str | None = None  # Only for stored tokens
    bill_to: PaymentBillTo
    amount: Money
    challenge: ChallengeCompletion


class AuthorizationResult(BaseModel):
    """Payment collaborator's answer to an authorization request."""

    authorized: bool
    transaction_id: str | None = None
    authorization_code: str | None = None
    decline_reason: DeclineReason | None = None


class CaptureStatus(str, Enum):
    """Outcome of an initial capture call at the payment processor."""

    AUTHORIZED = "authorized"
    REQUIRES_3DS = "requires_3ds"
    DECLINED = "declined"


class CaptureRequest(BaseModel):
    """Initial payment attempt sent to the payment processor."""

    order_reference: str
    amount: Money
    payment_token: str = Field(..., repr=False)
    token_type: TokenType
    bill_to: PaymentBillTo
    setup_phase_data: SetupPhaseData | None = None
    client_ip: str | None = None
    user_agent: str | None = None


class CaptureResult(BaseModel):
    """Payment processor's answer to an initial capture."""

    status: CaptureStatus
    transaction_id: str | None = None
    authorization_code: str | None = None
    decline_reason: DeclineReason | None = None
    challenge: dict[str, Any] | None = Field(None, description="Opaque challenge-presentation payload")
    setup_phase_data: SetupPhaseData | None = None


class OrderRequest(BaseModel):
    """Order creation request sent to the order service."""

    cart_id: str
    cart_version: int
    customer_id: str | None = None
    anonymous_id: str | None = None
    authorization: AuthorizationResult


class Order(BaseModel):
    """Order as returned by the order service."""

    id: str
    cart_id: str
    status: str = "created"
    created_at: datetime | None = None


# =============================================================================
# API PAYLOADS
# =============================================================================


class TokenCaptureBody(BaseModel):
    """Request payload for initial token capture."""

    cart_id: str = Field(..., min_length=1)
    cart_version: int = Field(..., ge=0)
    total_amount: Money
    payment_token: str = Field(..., min_length=1, repr=False)
    token_type: TokenType = TokenType.TRANSIENT
    billing_details: BillingDetails
    shipping_details: ShippingDetails | None = None
    setup_phase_data: SetupPhaseData | None = None


class ValidateCaptureBody(BaseModel):
    """Request payload for post-challenge validate-capture."""

    session_id: str = Field(..., min_length=1)
    completion: ChallengeCompletion
