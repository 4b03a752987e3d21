"""Request-scoped middleware for the checkout API."""

import ipaddress
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.caller_context import CallerContext, set_current_caller, clear_current_caller


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def _get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


class CallerMiddleware(BaseHTTPMiddleware):
    """Resolves the calling principal and sets caller context.

    The upstream authorizer has already authenticated the request and
    forwards exactly one of:
    - X-Customer-Id: signed-in shopper
    - X-Anonymous-Id: guest shopper

    Anything else on a protected path is rejected with 401. The context
    is cleared after the request completes.
    """

    CUSTOMER_HEADER = "X-Customer-Id"
    ANONYMOUS_HEADER = "X-Anonymous-Id"

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if self._is_public_path(request.url.path):
            return await call_next(request)

        customer_id = (request.headers.get(self.CUSTOMER_HEADER) or "").strip() or None
        anonymous_id = (request.headers.get(self.ANONYMOUS_HEADER) or "").strip() or None

        if bool(customer_id) == bool(anonymous_id):
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Exactly one of customer or anonymous identity is required",
                    getattr(request.state, "request_id", None),
                ).model_dump(mode="json"),
            )

        caller = CallerContext(
            customer_id=customer_id,
            anonymous_id=anonymous_id,
            source_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        set_current_caller(caller)

        try:
            return await call_next(request)
        finally:
            clear_current_caller()
