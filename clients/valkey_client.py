"""
Valkey (Redis-compatible) client for 3DS session storage.

Simple wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import logging

import redis
from redis.commands.core import Script

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        created = client.run_script(PUT_SCRIPT, ["threeds:session:3ds_x"], args)
        record = client.hgetall("threeds:session:3ds_x")  # Returns {} if missing
    """

    def __init__(self, url: str):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        self._scripts: dict[str, Script] = {}
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def hgetall(self, key: str) -> dict[str, str]:
        """
        Get every field of a hash.

        Returns an empty dict if the key doesn't exist (not an error).
        """
        return self._client.hgetall(key)

    def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns True if key existed and was deleted, False if key didn't exist.
        """
        return self._client.delete(key) > 0

    def run_script(self, source: str, keys: list[str], args: list[str | int]) -> int:
        """
        Run a Lua script atomically on the server.

        Scripts are registered once per source and invoked by SHA
        afterwards (redis-py falls back to EVAL on NOSCRIPT).
        """
        script = self._scripts.get(source)
        if script is None:
            script = self._client.register_script(source)
            self._scripts[source] = script
        return script(keys=keys, args=args)

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
