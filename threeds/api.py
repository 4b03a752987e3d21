"""HTTP routes for checkout token capture and 3DS validate-capture."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.base import success_response
from threeds.capture import CaptureOutcomeStatus, InitialCaptureService
from threeds.orchestrator import ValidateCaptureOrchestrator
from threeds.session import SessionManager
from threeds.types import TokenCaptureBody, ValidateCaptureBody
from utils.caller_context import get_current_caller


def _envelope(request: Request, status_code: int, data: dict) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=success_response(
            data,
            getattr(request.state, "request_id", None),
        ).model_dump(mode="json"),
    )


def create_checkout_router(
    capture_service: InitialCaptureService,
    orchestrator: ValidateCaptureOrchestrator,
) -> APIRouter:
    """Create checkout router with injected services.

    Handlers are plain functions: the services block on network I/O, so
    FastAPI runs them in its threadpool.
    """
    router = APIRouter(tags=["checkout"])

    @router.post("/checkout/me/token/capture")
    def capture_token(request: Request, body: TokenCaptureBody):
        """Initial payment attempt.

        Returns:
            - 201 with order + authorization when payment completed
            - 202 with session_id + challenge when 3DS is required
        """
        outcome = capture_service.capture(body, get_current_caller())

        if outcome.status == CaptureOutcomeStatus.CHALLENGE_REQUIRED:
            return _envelope(request, 202, {
                "status": outcome.status.value,
                "session_id": outcome.session_id,
                "challenge": outcome.challenge,
            })

        return _envelope(request, 201, {
            "status": outcome.status.value,
            "order": outcome.order.model_dump(mode="json"),
            "authorization": outcome.authorization.model_dump(mode="json"),
        })

    @router.post("/checkout/me/3ds/validate-capture")
    def validate_capture(request: Request, body: ValidateCaptureBody):
        """Complete payment after the 3DS challenge."""
        outcome = orchestrator.validate_capture(
            body.session_id,
            body.completion,
            get_current_caller(),
        )
        return _envelope(request, 201, {
            "session_id": outcome.session_id,
            "order": outcome.order.model_dump(mode="json"),
            "authorization": outcome.authorization.model_dump(mode="json"),
        })

    return router


def create_health_router(session_manager: SessionManager) -> APIRouter:
    """Liveness of the session store."""
    router = APIRouter(tags=["health"])

    @router.get("/health")
    def health(request: Request):
        healthy = session_manager.health_check()
        return _envelope(request, 200 if healthy else 503, {
            "status": "ok" if healthy else "degraded",
            "session_store": healthy,
        })

    return router
