"""Session Store Provider contract.

Stores hold raw session records keyed by session id. They do not decide
whether a session is alive (that is SessionManager's job), but they own
physical storage, native expiry, and the one atomic status transition.
"""

from abc import ABC, abstractmethod
from enum import Enum

from threeds.types import AuthenticationSession, SessionStatus


class UpdateOutcome(str, Enum):
    """Result of a conditional status update."""

    SUCCESS = "success"
    NOT_MATCHED = "not_matched"
    ABSENT = "absent"


class SessionStore(ABC):
    """
    Keyed storage for AuthenticationSession records.

    Implementations:
    - ValkeySessionStore: persistent, native per-key expiry
    - InMemorySessionStore: process-local, for tests and local runs

    All backend failures surface as StorageError.
    """

    @abstractmethod
    def put(self, session: AuthenticationSession) -> None:
        """
        Store a new record keyed by session.id.

        Raises:
            StorageError: On backend failure.
            PermanentStorageError: If the id is already taken.
        """

    @abstractmethod
    def get(self, session_id: str) -> AuthenticationSession | None:
        """Return the stored record, or None if never stored or already purged."""

    @abstractmethod
    def conditional_update_status(
        self,
        session_id: str,
        expected: SessionStatus,
        new: SessionStatus,
    ) -> UpdateOutcome:
        """
        Atomically set status to `new` only if it currently equals `expected`.

        Must be a single atomic operation at the storage layer. A record
        whose expires_at has passed is reported ABSENT even if the backend
        has not purged it yet.
        """

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Remove the record. Returns True if something was removed."""

    @abstractmethod
    def health_check(self) -> bool:
        """True if the backend is reachable."""
