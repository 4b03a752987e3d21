"""Application wiring. Everything is constructed once per process here."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.errors import register_error_handlers
from api.middleware import CallerMiddleware, RequestIDMiddleware
from threeds.api import create_checkout_router, create_health_router
from threeds.capture import InitialCaptureService
from threeds.collaborators import CartService, OrderService, PaymentProvider
from threeds.config import CheckoutConfig
from threeds.factory import create_session_store
from threeds.orchestrator import ValidateCaptureOrchestrator
from threeds.security_logger import SecurityLogger
from threeds.session import SessionManager
from threeds.store import SessionStore
from threeds.validator import SessionValidator
from utils.background import BackgroundTasks
from utils.clock import Clock

logger = logging.getLogger(__name__)


def _default_payment_provider(config: CheckoutConfig) -> PaymentProvider:
    if config.payment_provider == "mock":
        from clients.mock_payment import MockPaymentProvider

        logger.warning("Using mock payment provider (no real charges)")
        return MockPaymentProvider()

    from clients.payment_client import PaymentGatewayClient
    from clients.vault_client import get_payment_config

    return PaymentGatewayClient(**get_payment_config())


def _default_security_logger() -> SecurityLogger:
    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_database_url

    return SecurityLogger(PostgresClient(get_database_url()))


def create_app(
    config: CheckoutConfig | None = None,
    *,
    store: SessionStore | None = None,
    payment_provider: PaymentProvider | None = None,
    cart_service: CartService | None = None,
    order_service: OrderService | None = None,
    security_logger: SecurityLogger | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """
    Build the checkout application.

    Collaborators not passed in are built from configuration, with
    credentials read from Vault. Tests pass their own.
    """
    config = config or CheckoutConfig.from_env()

    if store is None:
        store = create_session_store(config, clock=clock)
    if payment_provider is None:
        payment_provider = _default_payment_provider(config)
    if cart_service is None or order_service is None:
        from clients.commerce_client import CommerceClient
        from clients.vault_client import get_commerce_config

        commerce = CommerceClient(**get_commerce_config())
        cart_service = cart_service or commerce
        order_service = order_service or commerce
    if security_logger is None:
        security_logger = _default_security_logger()

    background = BackgroundTasks(max_workers=config.cleanup_workers)
    session_manager = SessionManager(store, config=config, clock=clock)

    capture_service = InitialCaptureService(session_manager, payment_provider, order_service)
    orchestrator = ValidateCaptureOrchestrator(
        session_manager=session_manager,
        validator=SessionValidator(security_logger),
        cart_service=cart_service,
        payment_provider=payment_provider,
        order_service=order_service,
        security_logger=security_logger,
        background=background,
        config=config,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        background.shutdown(wait=True)
        close = getattr(store, "close", None)
        if close is not None:
            close()
        logger.info("Checkout service stopped")

    app = FastAPI(title="Checkout 3DS", lifespan=lifespan)
    register_error_handlers(app)
    app.add_middleware(CallerMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.include_router(create_checkout_router(capture_service, orchestrator))
    app.include_router(create_health_router(session_manager))

    app.state.session_manager = session_manager
    app.state.background = background

    logger.info(
        "Checkout service configured (store=%s, payments=%s)",
        config.store_provider,
        config.payment_provider,
    )
    return app
