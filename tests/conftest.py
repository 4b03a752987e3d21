"""Shared test fixtures for the checkout test suite."""

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
from clients.vault_client import reset_vault_cache
reset_vault_cache()

from threeds.config import CheckoutConfig
from threeds.memory_store import InMemorySessionStore
from threeds.security_logger import SecurityLogger
from threeds.session import SessionManager
from threeds.types import (
    BillingDetails,
    Cart,
    CartLineItem,
    ChallengeCompletion,
    Money,
    PaymentAddress,
    ShippingDetails,
    TokenType,
)
from utils.caller_context import CallerContext, clear_current_caller
from utils.clock import ManualClock


# =============================================================================
# PRINCIPAL CONSTANTS
# =============================================================================

CUSTOMER_A = "cust-A"
CUSTOMER_B = "cust-B"
ANONYMOUS_A = "anon-A"
ANONYMOUS_B = "anon-B"

START_TIME = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# CALLER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_caller_context():
    """Ensure clean caller context before and after each test."""
    clear_current_caller()
    yield
    clear_current_caller()


@pytest.fixture
def customer_caller() -> CallerContext:
    """Signed-in customer A."""
    return CallerContext(customer_id=CUSTOMER_A, source_address="203.0.113.7", user_agent="pytest")


@pytest.fixture
def anonymous_caller() -> CallerContext:
    """Guest shopper A."""
    return CallerContext(anonymous_id=ANONYMOUS_A, source_address="203.0.113.8", user_agent="pytest")


# =============================================================================
# TIME & STORAGE FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    """Deterministic clock starting at a fixed instant."""
    return ManualClock(START_TIME)


@pytest.fixture
def config() -> CheckoutConfig:
    """Config with the in-memory store and no retry delay."""
    return CheckoutConfig(
        store_provider="memory",
        storage_retry_base_delay_seconds=0,
        storage_retry_max_delay_seconds=0,
        authorization_timeout_seconds=1,
    )


@pytest.fixture
def store(clock):
    """In-memory store sharing the test clock."""
    store = InMemorySessionStore(clock=clock)
    yield store
    store.close()


@pytest.fixture
def session_manager(store, config, clock) -> SessionManager:
    """SessionManager over the in-memory store."""
    return SessionManager(store, config=config, clock=clock)


@pytest.fixture
def security_logger():
    """Audit sink stand-in; no database needed."""
    return Mock(spec=SecurityLogger)


# =============================================================================
# DOMAIN DATA FIXTURES
# =============================================================================


@pytest.fixture
def billing() -> BillingDetails:
    return BillingDetails(
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        phone="+15555550100",
        address=PaymentAddress(
            address1="1 Analytical Way",
            locality="London",
            postal_code="N1 9GU",
            country="GB",
        ),
    )


@pytest.fixture
def shipping() -> ShippingDetails:
    return ShippingDetails(
        first_name="Ada",
        last_name="Lovelace",
        address=PaymentAddress(
            address1="1 Analytical Way",
            locality="London",
            postal_code="N1 9GU",
            country="GB",
        ),
    )


@pytest.fixture
def total() -> Money:
    return Money(amount=Decimal("42.00"), currency="USD")


@pytest.fixture
def completion() -> ChallengeCompletion:
    return ChallengeCompletion(
        transaction_id="tx-3ds-001",
        cryptogram="AAABBBCCC=",
        eci_indicator="05",
        authentication_result="Y",
    )


@pytest.fixture
def make_session(session_manager, billing, total):
    """Factory for pending sessions. Defaults to customer A, cart-1 v3."""

    def _make(customer_id=CUSTOMER_A, anonymous_id=None, cart_id="cart-1", cart_version=3,
              token_type=TokenType.TRANSIENT):
        return session_manager.create_session(
            cart_id=cart_id,
            cart_version=cart_version,
            payment_token="tok_secret_123",
            token_type=token_type,
            billing_details=billing,
            total_amount=total,
            customer_id=customer_id,
            anonymous_id=anonymous_id,
        )

    return _make


@pytest.fixture
def fresh_cart() -> Cart:
    """Cart matching the make_session defaults."""
    return Cart(
        id="cart-1",
        version=3,
        line_items=[CartLineItem(id="li-1", sku="SKU-1", quantity=2)],
        total=Money(amount=Decimal("42.00"), currency="USD"),
    )
