"""Tests for SessionValidator - ownership and cart freshness."""

import pytest

from threeds.exceptions import ForbiddenError, UnprocessableError, UnprocessableReason
from threeds.security_logger import SecurityEvent, Severity
from threeds.types import Cart, CartLineItem
from threeds.validator import SessionValidator
from utils.caller_context import CallerContext


@pytest.fixture
def validator(security_logger):
    return SessionValidator(security_logger)


class TestOwnership:
    """validate_ownership()."""

    def test_customer_owner_passes(self, validator, make_session, customer_caller, security_logger):
        validator.validate_ownership(make_session(), customer_caller)
        security_logger.log.assert_not_called()

    def test_anonymous_owner_passes(self, validator, make_session, anonymous_caller):
        session = make_session(customer_id=None, anonymous_id="anon-A")
        validator.validate_ownership(session, anonymous_caller)

    def test_other_customer_rejected(self, validator, make_session, security_logger):
        session = make_session()
        caller = CallerContext(customer_id="cust-B", source_address="198.51.100.1")

        with pytest.raises(ForbiddenError) as exc_info:
            validator.validate_ownership(session, caller)

        assert exc_info.value.session_id == session.id
        args, kwargs = security_logger.log.call_args
        assert args == (SecurityEvent.OWNERSHIP_VIOLATION, Severity.HIGH)
        assert kwargs["recorded_owner"] == "cust-A"
        assert kwargs["attempted_by"] == "cust-B"
        assert kwargs["ip_address"] == "198.51.100.1"

    def test_anonymous_caller_on_customer_session(self, validator, make_session):
        with pytest.raises(ForbiddenError):
            validator.validate_ownership(make_session(), CallerContext(anonymous_id="cust-A"))

    def test_customer_caller_on_anonymous_session(self, validator, make_session):
        session = make_session(customer_id=None, anonymous_id="anon-A")
        with pytest.raises(ForbiddenError):
            validator.validate_ownership(session, CallerContext(customer_id="anon-A"))

    def test_other_guest_rejected(self, validator, make_session):
        session = make_session(customer_id=None, anonymous_id="anon-A")
        with pytest.raises(ForbiddenError):
            validator.validate_ownership(session, CallerContext(anonymous_id="anon-B"))

    def test_audit_failure_still_forbidden(self, validator, make_session, security_logger):
        """A broken audit sink never turns a violation into success."""
        security_logger.log.side_effect = RuntimeError("db down")

        with pytest.raises(ForbiddenError):
            validator.validate_ownership(make_session(), CallerContext(customer_id="cust-B"))


class TestCartFreshness:
    """validate_cart_freshness()."""

    def test_matching_cart_passes(self, validator, make_session, fresh_cart):
        validator.validate_cart_freshness(make_session(), fresh_cart)

    def test_version_moved(self, validator, make_session, fresh_cart):
        cart = fresh_cart.model_copy(update={"version": 4})

        with pytest.raises(UnprocessableError) as exc_info:
            validator.validate_cart_freshness(make_session(), cart)

        assert exc_info.value.reason == UnprocessableReason.CART_MODIFIED

    def test_missing_cart(self, validator, make_session):
        with pytest.raises(UnprocessableError) as exc_info:
            validator.validate_cart_freshness(make_session(), None)
        assert exc_info.value.reason == UnprocessableReason.CART_INVALID

    def test_empty_cart(self, validator, make_session):
        with pytest.raises(UnprocessableError) as exc_info:
            validator.validate_cart_freshness(make_session(), Cart(id="cart-1", version=3))
        assert exc_info.value.reason == UnprocessableReason.CART_INVALID

    def test_closed_cart(self, validator, make_session):
        cart = Cart(
            id="cart-1",
            version=3,
            state="ordered",
            line_items=[CartLineItem(id="li-1", quantity=1)],
        )
        with pytest.raises(UnprocessableError) as exc_info:
            validator.validate_cart_freshness(make_session(), cart)
        assert exc_info.value.reason == UnprocessableReason.CART_INVALID
