"""
In-memory session store for tests and local development.

Same contract as ValkeySessionStore, backed by a dict guarded by a lock.

WARNING: Not for production use. No durability, single process only.
"""

import logging
import threading

from threeds.exceptions import PermanentStorageError
from threeds.store import SessionStore, UpdateOutcome
from threeds.types import AuthenticationSession, SessionStatus
from utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class InMemorySessionStore(SessionStore):
    """
    Thread-safe in-memory session store.

    Example:
        >>> clock = ManualClock()
        >>> store = InMemorySessionStore(clock=clock)
        >>> clock.advance(minutes=31)
        >>> store.sweep_expired()
    """

    def __init__(self, clock: Clock | None = None, sweep_interval_seconds: float | None = None):
        """
        Args:
            clock: Time source for expiry checks (defaults to the system clock)
            sweep_interval_seconds: If set, a daemon thread purges expired
                records at this interval until close() is called
        """
        self._clock = clock or SystemClock()
        self._sessions: dict[str, AuthenticationSession] = {}
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

        if sweep_interval_seconds is not None:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                args=(sweep_interval_seconds,),
                name="session-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    def put(self, session: AuthenticationSession) -> None:
        with self._lock:
            if session.id in self._sessions:
                raise PermanentStorageError(f"Session id already exists: {session.id}")
            self._sessions[session.id] = session

    def get(self, session_id: str) -> AuthenticationSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def conditional_update_status(
        self,
        session_id: str,
        expected: SessionStatus,
        new: SessionStatus,
    ) -> UpdateOutcome:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or self._clock.now() >= session.expires_at:
                return UpdateOutcome.ABSENT
            if session.status != expected:
                return UpdateOutcome.NOT_MATCHED
            self._sessions[session_id] = session.model_copy(update={"status": new})
            return UpdateOutcome.SUCCESS

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def health_check(self) -> bool:
        return True

    # Test utilities

    def sweep_expired(self) -> int:
        """Purge records whose expires_at has passed. Returns number removed."""
        now = self._clock.now()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if now >= s.expires_at]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.debug("Swept %d expired sessions", len(expired))
        return len(expired)

    def clear(self) -> None:
        """Remove every record."""
        with self._lock:
            self._sessions.clear()

    def all_sessions(self) -> list[AuthenticationSession]:
        """Snapshot of every stored record, live or not."""
        with self._lock:
            return list(self._sessions.values())

    def close(self) -> None:
        """Stop the background sweeper, if running."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def _sweep_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("Session sweep failed")
