"""Valkey-backed session store for production use.

One hash per session at `<prefix><session_id>`. Nested documents
(billing, shipping, setup data, total amount) are JSON strings inside the
hash. Native expiry is set with EXPIREAT on `expires_epoch`, the whole
epoch seconds of expires_at.

Native expiry is a safety net against unbounded growth, not the liveness
check: SessionManager compares expires_at on every read.
"""

import json
import logging

import redis
from pydantic import ValidationError

from clients.valkey_client import ValkeyClient
from threeds.exceptions import PermanentStorageError, StorageError
from threeds.store import SessionStore, UpdateOutcome
from threeds.types import AuthenticationSession, SessionStatus
from utils.clock import Clock, SystemClock
from utils.timezone import parse_iso, to_epoch_seconds

logger = logging.getLogger(__name__)

# ARGV[1] = expires_epoch, ARGV[2..] = field/value pairs
_PUT_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return 0
end
redis.call('HSET', KEYS[1], unpack(ARGV, 2))
redis.call('EXPIREAT', KEYS[1], ARGV[1])
return 1
"""

# ARGV[1] = expected status, ARGV[2] = new status, ARGV[3] = now epoch seconds
# Returns 1 success, 0 status mismatch, -1 absent or lapsed.
# Second granularity: a record in its final partial second still counts as live.
_CONDITIONAL_STATUS_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return -1
end
local expires = tonumber(redis.call('HGET', KEYS[1], 'expires_epoch'))
if expires == nil or tonumber(ARGV[3]) > expires then
    return -1
end
if redis.call('HGET', KEYS[1], 'status') ~= ARGV[1] then
    return 0
end
redis.call('HSET', KEYS[1], 'status', ARGV[2])
return 1
"""

_JSON_FIELDS = ("billing_details", "shipping_details", "setup_phase_data", "total_amount")

_SCRIPT_OUTCOMES = {
    1: UpdateOutcome.SUCCESS,
    0: UpdateOutcome.NOT_MATCHED,
    -1: UpdateOutcome.ABSENT,
}


class ValkeySessionStore(SessionStore):
    """Session store on Valkey with per-key native expiry."""

    def __init__(
        self,
        valkey: ValkeyClient,
        key_prefix: str = "threeds:session:",
        clock: Clock | None = None,
    ):
        self._valkey = valkey
        self._prefix = key_prefix
        self._clock = clock or SystemClock()

    def _key(self, session_id: str) -> str:
        """Generate Valkey key for a session id."""
        return f"{self._prefix}{session_id}"

    def put(self, session: AuthenticationSession) -> None:
        record = self.to_record(session)
        expires_epoch = record.pop("expires_epoch")

        args: list[str | int] = [expires_epoch, "expires_epoch", expires_epoch]
        for field, value in record.items():
            args.extend([field, value])

        try:
            created = self._valkey.run_script(_PUT_SCRIPT, [self._key(session.id)], args)
        except redis.RedisError as e:
            raise StorageError(f"Failed to store session {session.id}") from e

        if not created:
            raise PermanentStorageError(f"Session id already exists: {session.id}")

    def get(self, session_id: str) -> AuthenticationSession | None:
        try:
            record = self._valkey.hgetall(self._key(session_id))
        except redis.RedisError as e:
            raise StorageError(f"Failed to retrieve session {session_id}") from e

        if not record:
            return None
        return self.from_record(record)

    def conditional_update_status(
        self,
        session_id: str,
        expected: SessionStatus,
        new: SessionStatus,
    ) -> UpdateOutcome:
        now_epoch = to_epoch_seconds(self._clock.now())
        try:
            result = self._valkey.run_script(
                _CONDITIONAL_STATUS_SCRIPT,
                [self._key(session_id)],
                [expected.value, new.value, now_epoch],
            )
        except redis.RedisError as e:
            raise StorageError(f"Failed to update status of session {session_id}") from e

        try:
            return _SCRIPT_OUTCOMES[int(result)]
        except (KeyError, TypeError, ValueError):
            raise PermanentStorageError(f"Unexpected status script result {result!r} for {session_id}")

    def delete(self, session_id: str) -> bool:
        try:
            return self._valkey.delete(self._key(session_id))
        except redis.RedisError as e:
            raise StorageError(f"Failed to delete session {session_id}") from e

    def health_check(self) -> bool:
        try:
            return self._valkey.ping()
        except redis.RedisError:
            logger.warning("Valkey health check failed", exc_info=True)
            return False

    # Serialization

    @staticmethod
    def to_record(session: AuthenticationSession) -> dict[str, str | int]:
        """
        Flatten a session into hash fields.

        None-valued attributes are omitted rather than stored as empty
        strings. expires_epoch = floor(expires_at in ms / 1000).
        """
        data = session.model_dump(mode="json")
        record: dict[str, str | int] = {}
        for field, value in data.items():
            if value is None:
                continue
            if field in _JSON_FIELDS:
                record[field] = json.dumps(value, separators=(",", ":"))
            else:
                record[field] = value
        record["expires_epoch"] = to_epoch_seconds(session.expires_at)
        return record

    @staticmethod
    def from_record(record: dict[str, str]) -> AuthenticationSession:
        """
        Rebuild a session from hash fields.

        Raises:
            PermanentStorageError: If the record is malformed.
        """
        try:
            data = {
                field: value
                for field, value in record.items()
                if field != "expires_epoch"
            }
            for field in _JSON_FIELDS:
                if field in data:
                    data[field] = json.loads(data[field])
            data["created_at"] = parse_iso(data["created_at"])
            data["expires_at"] = parse_iso(data["expires_at"])
            data["cart_version"] = int(data["cart_version"])
            return AuthenticationSession.model_validate(data)
        except (KeyError, ValueError, ValidationError) as e:
            raise PermanentStorageError(f"Malformed session record: {e}") from e
