"""Tests for ValidateCaptureOrchestrator - the post-challenge sequence."""

import threading
from decimal import Decimal
from unittest.mock import Mock

import pytest

from threeds.collaborators import CartService, OrderService, PaymentProvider
from threeds.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalError,
    SessionAlreadyUsedError,
    UnprocessableError,
    UnprocessableReason,
)
from threeds.orchestrator import (
    ValidateCaptureOrchestrator,
    build_authorization_request,
    declined_error,
)
from threeds.security_logger import SecurityEvent, Severity
from threeds.types import (
    AuthorizationResult,
    DeclineReason,
    Money,
    Order,
    SessionStatus,
    TokenType,
)
from threeds.validator import SessionValidator
from utils.background import BackgroundTasks
from utils.caller_context import CallerContext


@pytest.fixture
def cart_service(fresh_cart):
    mock = Mock(spec=CartService)
    mock.get_cart.return_value = fresh_cart
    return mock


@pytest.fixture
def payment_provider():
    mock = Mock(spec=PaymentProvider)
    mock.authorize.return_value = AuthorizationResult(
        authorized=True,
        transaction_id="tx-auth-1",
        authorization_code="AUTH01",
    )
    return mock


@pytest.fixture
def order_service():
    mock = Mock(spec=OrderService)
    mock.create_order.return_value = Order(id="order-1", cart_id="cart-1")
    return mock


@pytest.fixture
def background():
    return Mock(spec=BackgroundTasks)


@pytest.fixture
def orchestrator(session_manager, security_logger, cart_service, payment_provider,
                 order_service, background, config):
    return ValidateCaptureOrchestrator(
        session_manager=session_manager,
        validator=SessionValidator(security_logger),
        cart_service=cart_service,
        payment_provider=payment_provider,
        order_service=order_service,
        security_logger=security_logger,
        background=background,
        config=config,
    )


class TestHappyPath:
    """Successful validate-capture."""

    def test_creates_order(self, orchestrator, make_session, completion, customer_caller, order_service):
        session = make_session()

        outcome = orchestrator.validate_capture(session.id, completion, customer_caller)

        assert outcome.session_id == session.id
        assert outcome.order.id == "order-1"
        assert outcome.authorization.transaction_id == "tx-auth-1"
        request = order_service.create_order.call_args.args[0]
        assert request.cart_id == "cart-1"
        assert request.cart_version == 3
        assert request.customer_id == "cust-A"
        assert request.anonymous_id is None

    def test_session_consumed(self, orchestrator, make_session, completion, customer_caller, store):
        session = make_session()
        orchestrator.validate_capture(session.id, completion, customer_caller)
        assert store.get(session.id).status == SessionStatus.USED

    def test_schedules_cleanup(self, orchestrator, make_session, completion, customer_caller,
                               background, store):
        session = make_session()
        orchestrator.validate_capture(session.id, completion, customer_caller)

        fn, session_id = background.submit.call_args.args
        assert session_id == session.id

        fn(session_id)
        assert store.get(session.id) is None

    def test_cleanup_deletes_session(self, session_manager, security_logger, cart_service,
                                     payment_provider, order_service, config, make_session,
                                     completion, customer_caller, store):
        """With a real task queue the session record is gone afterwards."""
        background = BackgroundTasks(max_workers=1)
        orchestrator = ValidateCaptureOrchestrator(
            session_manager, SessionValidator(security_logger), cart_service,
            payment_provider, order_service, security_logger, background, config,
        )
        session = make_session()

        orchestrator.validate_capture(session.id, completion, customer_caller)
        background.shutdown(wait=True)

        assert store.get(session.id) is None

    def test_guest_checkout(self, orchestrator, make_session, completion, anonymous_caller, order_service):
        session = make_session(customer_id=None, anonymous_id="anon-A")

        orchestrator.validate_capture(session.id, completion, anonymous_caller)

        request = order_service.create_order.call_args.args[0]
        assert request.anonymous_id == "anon-A"
        assert request.customer_id is None


class TestRetrieval:
    """Missing sessions."""

    def test_unknown_session_conflicts(self, orchestrator, completion, customer_caller, cart_service):
        with pytest.raises(ConflictError):
            orchestrator.validate_capture("3ds_unknown", completion, customer_caller)
        cart_service.get_cart.assert_not_called()

    def test_expired_session_conflicts(self, orchestrator, make_session, completion, customer_caller, clock):
        session = make_session()
        clock.advance(minutes=30, seconds=1)
        with pytest.raises(ConflictError):
            orchestrator.validate_capture(session.id, completion, customer_caller)

    def test_second_completion_conflicts(self, orchestrator, make_session, completion,
                                         customer_caller, payment_provider):
        session = make_session()
        orchestrator.validate_capture(session.id, completion, customer_caller)

        with pytest.raises(ConflictError):
            orchestrator.validate_capture(session.id, completion, customer_caller)
        assert payment_provider.authorize.call_count == 1


class TestOwnership:
    """Hijack attempts."""

    def test_other_customer_forbidden(self, orchestrator, make_session, completion,
                                      cart_service, payment_provider, store):
        session = make_session()

        with pytest.raises(ForbiddenError):
            orchestrator.validate_capture(session.id, completion, CallerContext(customer_id="cust-B"))

        cart_service.get_cart.assert_not_called()
        payment_provider.authorize.assert_not_called()
        assert store.get(session.id).status == SessionStatus.PENDING


class TestCartFreshness:
    """Cart changed during the challenge (scenario 4)."""

    def test_cart_modified_leaves_session_pending(self, orchestrator, make_session, completion,
                                                  customer_caller, cart_service, fresh_cart,
                                                  payment_provider, store):
        session = make_session()
        cart_service.get_cart.return_value = fresh_cart.model_copy(update={"version": 4})

        with pytest.raises(UnprocessableError) as exc_info:
            orchestrator.validate_capture(session.id, completion, customer_caller)

        assert exc_info.value.reason == UnprocessableReason.CART_MODIFIED
        assert store.get(session.id).status == SessionStatus.PENDING
        payment_provider.authorize.assert_not_called()

    def test_missing_cart(self, orchestrator, make_session, completion, customer_caller, cart_service):
        session = make_session()
        cart_service.get_cart.return_value = None

        with pytest.raises(UnprocessableError) as exc_info:
            orchestrator.validate_capture(session.id, completion, customer_caller)

        assert exc_info.value.reason == UnprocessableReason.CART_INVALID


class TestDeclines:
    """Payment declines (scenario 5)."""

    @pytest.mark.parametrize("decline,reason", [
        (DeclineReason.GENERIC_DECLINE, UnprocessableReason.PAYMENT_DECLINED),
        (DeclineReason.INSUFFICIENT_FUNDS, UnprocessableReason.INSUFFICIENT_FUNDS),
        (DeclineReason.CARD_EXPIRED, UnprocessableReason.CARD_EXPIRED),
    ])
    def test_decline_mapping(self, orchestrator, make_session, completion, customer_caller,
                             payment_provider, order_service, store, decline, reason):
        session = make_session()
        payment_provider.authorize.return_value = AuthorizationResult(
            authorized=False,
            decline_reason=decline,
        )

        with pytest.raises(UnprocessableError) as exc_info:
            orchestrator.validate_capture(session.id, completion, customer_caller)

        assert exc_info.value.reason == reason
        order_service.create_order.assert_not_called()
        assert store.get(session.id).status == SessionStatus.USED

    def test_decline_without_reason_is_generic(self):
        assert declined_error(None).reason == UnprocessableReason.PAYMENT_DECLINED

    def test_provider_failure_is_decline(self, orchestrator, make_session, completion,
                                         customer_caller, payment_provider):
        session = make_session()
        payment_provider.authorize.side_effect = RuntimeError("gateway 502")

        with pytest.raises(UnprocessableError) as exc_info:
            orchestrator.validate_capture(session.id, completion, customer_caller)

        assert exc_info.value.reason == UnprocessableReason.PAYMENT_DECLINED

    def test_declined_session_not_reusable(self, orchestrator, make_session, completion,
                                           customer_caller, payment_provider):
        session = make_session()
        payment_provider.authorize.return_value = AuthorizationResult(authorized=False)

        with pytest.raises(UnprocessableError):
            orchestrator.validate_capture(session.id, completion, customer_caller)
        with pytest.raises(ConflictError):
            orchestrator.validate_capture(session.id, completion, customer_caller)


class TestPostConsumptionFailures:
    """Failures after the session is used (scenario 6, timeouts)."""

    def test_order_failure_is_internal(self, orchestrator, make_session, completion, customer_caller,
                                       order_service, security_logger, store, caplog):
        session = make_session()
        order_service.create_order.side_effect = RuntimeError("orders down")

        with caplog.at_level("CRITICAL", logger="threeds.orchestrator"):
            with pytest.raises(InternalError) as exc_info:
                orchestrator.validate_capture(session.id, completion, customer_caller)

        assert exc_info.value.session_id == session.id
        assert store.get(session.id).status == SessionStatus.USED
        assert any("RECONCILIATION" in r.getMessage() for r in caplog.records)
        args, kwargs = security_logger.log.call_args
        assert args == (SecurityEvent.CAPTURED_WITHOUT_ORDER, Severity.CRITICAL)
        assert kwargs["details"]["transaction_id"] == "tx-auth-1"

    def test_order_failure_with_broken_audit_still_internal(self, orchestrator, make_session, completion,
                                                            customer_caller, order_service, security_logger):
        session = make_session()
        order_service.create_order.side_effect = RuntimeError("orders down")
        security_logger.log.side_effect = RuntimeError("db down")

        with pytest.raises(InternalError):
            orchestrator.validate_capture(session.id, completion, customer_caller)

    def test_provider_timeout_is_internal(self, orchestrator, make_session, completion,
                                          customer_caller, payment_provider, security_logger):
        session = make_session()
        payment_provider.authorize.side_effect = TimeoutError("read timeout")

        with pytest.raises(InternalError):
            orchestrator.validate_capture(session.id, completion, customer_caller)

        assert security_logger.log.call_args.args == (SecurityEvent.AUTHORIZATION_TIMEOUT, Severity.CRITICAL)

    def test_bounded_authorization_timeout(self, orchestrator, make_session, completion,
                                           customer_caller, payment_provider, order_service):
        """A hung processor call is abandoned after the configured bound."""
        release = threading.Event()

        def hang(request):
            release.wait(5)

        session = make_session()
        payment_provider.authorize.side_effect = hang
        try:
            with pytest.raises(InternalError):
                orchestrator.validate_capture(session.id, completion, customer_caller)
        finally:
            release.set()
        order_service.create_order.assert_not_called()


class TestConcurrentCompletion:
    """Double-submit of the same challenge."""

    def test_only_one_reaches_processor(self, orchestrator, make_session, completion,
                                        customer_caller, payment_provider):
        session = make_session()
        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        lock = threading.Lock()

        def complete():
            barrier.wait()
            try:
                orchestrator.validate_capture(session.id, completion, customer_caller)
                outcome = "ok"
            except ConflictError:
                outcome = "conflict"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=complete) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("conflict") == workers - 1
        assert payment_provider.authorize.call_count == 1


class TestReplayAudit:
    """Losing the single-use race is audited."""

    def test_lost_race_audited(self, orchestrator, make_session, completion, customer_caller,
                               session_manager, security_logger, monkeypatch):
        session = make_session()

        def consumed_elsewhere(session_id):
            raise SessionAlreadyUsedError(session_id)

        monkeypatch.setattr(session_manager, "mark_used", consumed_elsewhere)

        with pytest.raises(ConflictError):
            orchestrator.validate_capture(session.id, completion, customer_caller)

        assert security_logger.log.call_args.args == (SecurityEvent.SESSION_REPLAY_REJECTED, Severity.WARNING)


class TestTerminalStates:
    """Each invocation ends in complete or failed, and says where."""

    def test_success_logs_complete(self, orchestrator, make_session, completion,
                                   customer_caller, caplog):
        session = make_session()

        with caplog.at_level("INFO", logger="threeds.orchestrator"):
            orchestrator.validate_capture(session.id, completion, customer_caller)

        messages = [r.getMessage() for r in caplog.records]
        assert f"validate-capture complete for session {session.id}: order order-1" in messages

    def test_failure_logs_failed_with_step(self, orchestrator, make_session, completion,
                                           customer_caller, cart_service, fresh_cart, caplog):
        session = make_session()
        cart_service.get_cart.return_value = fresh_cart.model_copy(update={"version": 4})

        with caplog.at_level("WARNING", logger="threeds.orchestrator"):
            with pytest.raises(UnprocessableError):
                orchestrator.validate_capture(session.id, completion, customer_caller)

        messages = [r.getMessage() for r in caplog.records]
        assert (
            f"validate-capture failed for session {session.id} at cart_check: UnprocessableError"
            in messages
        )

    def test_unknown_session_fails_at_retrieval(self, orchestrator, completion,
                                                customer_caller, caplog):
        with caplog.at_level("WARNING", logger="threeds.orchestrator"):
            with pytest.raises(ConflictError):
                orchestrator.validate_capture("3ds_never", completion, customer_caller)

        assert any("at retrieving" in r.getMessage() for r in caplog.records)


class TestBuildAuthorizationRequest:
    """Merging session and completion data."""

    def test_transient_token_omits_customer(self, make_session, completion):
        request = build_authorization_request(make_session(), completion)

        assert request.customer_id is None
        assert request.payment_token == "tok_secret_123"
        assert request.amount == Money(amount=Decimal("42.00"), currency="USD")
        assert request.bill_to.first_name == "Ada"
        assert request.challenge == completion

    def test_stored_token_includes_customer(self, make_session, completion):
        request = build_authorization_request(make_session(token_type=TokenType.STORED), completion)
        assert request.customer_id == "cust-A"


class TestScenarios:
    """End-to-end scenarios against the in-memory store."""

    def test_create_retrieve_hijack_consume(self, session_manager, security_logger, billing):
        """Create, read back, reject another owner, single use."""
        session = session_manager.create_session(
            cart_id="cart-123",
            cart_version=1,
            payment_token="tok",
            token_type=TokenType.TRANSIENT,
            billing_details=billing,
            total_amount=Money(amount=Decimal("159.99"), currency="GBP"),
            customer_id="cust-A",
        )

        assert session.status == SessionStatus.PENDING
        assert session_manager.get_session(session.id) == session

        with pytest.raises(ForbiddenError):
            SessionValidator(security_logger).validate_ownership(session, CallerContext(customer_id="cust-B"))

        session_manager.mark_used(session.id)
        with pytest.raises(SessionAlreadyUsedError):
            session_manager.mark_used(session.id)
