"""3DS challenge-session handling for checkout."""

from threeds.config import CheckoutConfig
from threeds.exceptions import (
    CheckoutError,
    InvalidSessionRequest,
    ConflictError,
    SessionNotFoundError,
    SessionAlreadyUsedError,
    ForbiddenError,
    UnprocessableError,
    UnprocessableReason,
    StorageError,
    PermanentStorageError,
    InternalError,
)
from threeds.types import (
    AuthenticationSession,
    SessionStatus,
    TokenType,
    DeclineReason,
    Money,
    BillingDetails,
    ShippingDetails,
    SetupPhaseData,
    Cart,
    ChallengeCompletion,
)
from threeds.store import SessionStore, UpdateOutcome
from threeds.memory_store import InMemorySessionStore
from threeds.valkey_store import ValkeySessionStore
from threeds.factory import create_session_store
from threeds.session import SessionManager, SESSION_TTL
from threeds.security_logger import SecurityLogger, SecurityEvent, Severity
from threeds.validator import SessionValidator
from threeds.orchestrator import ValidateCaptureOrchestrator, ValidateCaptureOutcome
from threeds.capture import InitialCaptureService, CaptureOutcome, CaptureOutcomeStatus
