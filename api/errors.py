"""Exception handlers mapping checkout errors onto HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from threeds.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidSessionRequest,
    StorageError,
    UnprocessableError,
    UnprocessableReason,
)

logger = logging.getLogger(__name__)

# Absent, expired and already-used sessions all get this exact message.
SESSION_NOT_FOUND_MESSAGE = "Authentication session not found or expired. Please restart checkout."

UNPROCESSABLE_CODES = {
    UnprocessableReason.CART_MODIFIED: ErrorCodes.CART_MODIFIED,
    UnprocessableReason.CART_INVALID: ErrorCodes.CART_INVALID,
    UnprocessableReason.PAYMENT_DECLINED: ErrorCodes.PAYMENT_DECLINED,
    UnprocessableReason.INSUFFICIENT_FUNDS: ErrorCodes.INSUFFICIENT_FUNDS,
    UnprocessableReason.CARD_EXPIRED: ErrorCodes.CARD_EXPIRED,
}

_UNPROCESSABLE_MESSAGES = {
    UnprocessableReason.CART_MODIFIED: "Cart was modified during authentication. Please review your cart.",
    UnprocessableReason.CART_INVALID: "Cart is no longer valid for checkout.",
    UnprocessableReason.PAYMENT_DECLINED: "Payment was declined.",
    UnprocessableReason.INSUFFICIENT_FUNDS: "Payment was declined due to insufficient funds.",
    UnprocessableReason.CARD_EXPIRED: "Payment was declined because the card has expired.",
}


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _json(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, _request_id(request)).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(InvalidSessionRequest)
    async def invalid_request_handler(request: Request, exc: InvalidSessionRequest):
        return _json(request, 400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        return _json(request, 409, ErrorCodes.SESSION_NOT_FOUND, SESSION_NOT_FOUND_MESSAGE)

    @app.exception_handler(ForbiddenError)
    async def forbidden_handler(request: Request, exc: ForbiddenError):
        return _json(
            request,
            403,
            ErrorCodes.OWNERSHIP_VIOLATION,
            "Authentication session does not belong to the caller.",
        )

    @app.exception_handler(UnprocessableError)
    async def unprocessable_handler(request: Request, exc: UnprocessableError):
        return _json(
            request,
            422,
            UNPROCESSABLE_CODES[exc.reason],
            _UNPROCESSABLE_MESSAGES[exc.reason],
        )

    @app.exception_handler(InternalError)
    async def internal_handler(request: Request, exc: InternalError):
        logger.error("Checkout internal error (session %s): %s", exc.session_id, exc)
        return _json(
            request,
            500,
            ErrorCodes.INTERNAL_ERROR,
            "Payment could not be completed. Please contact support.",
        )

    @app.exception_handler(StorageError)
    async def storage_handler(request: Request, exc: StorageError):
        logger.error("Session storage unavailable: %s", exc)
        return _json(
            request,
            503,
            ErrorCodes.SERVICE_UNAVAILABLE,
            "Checkout is temporarily unavailable. Please try again.",
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
