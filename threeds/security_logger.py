"""Security event logging for the 3DS checkout audit trail.

Append-only log to the security_events table:

    security_events (id, event_type, severity, session_id, recorded_owner,
                     attempted_by, ip_address, user_agent, details, created_at)
"""

import logging
from enum import Enum
from typing import Any

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Checkout security event types."""

    OWNERSHIP_VIOLATION = "ownership_violation"
    SESSION_REPLAY_REJECTED = "session_replay_rejected"
    AUTHORIZATION_TIMEOUT = "authorization_timeout"
    CAPTURED_WITHOUT_ORDER = "captured_without_order"


class Severity(Enum):
    """How urgently a human needs to look at an event."""

    INFO = "info"
    WARNING = "warning"
    HIGH = "high"
    CRITICAL = "critical"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        severity: Severity,
        session_id: str | None = None,
        recorded_owner: str | None = None,
        attempted_by: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database and to the application log."""
        logger.log(
            _LOG_LEVELS[severity],
            "Security event %s (session=%s, owner=%s, attempted_by=%s, ip=%s)",
            event.value,
            session_id,
            recorded_owner,
            attempted_by,
            ip_address,
        )

        self._db.execute_returning(
            """INSERT INTO security_events
               (event_type, severity, session_id, recorded_owner, attempted_by,
                ip_address, user_agent, details, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                event.value,
                severity.value,
                session_id,
                recorded_owner,
                attempted_by,
                ip_address,
                user_agent,
                Json(details) if details else None,
                now_utc(),
            ),
        )
