"""Session store selection, done once at startup."""

import logging

from clients.valkey_client import ValkeyClient
from threeds.config import CheckoutConfig
from threeds.memory_store import InMemorySessionStore
from threeds.store import SessionStore
from threeds.valkey_store import ValkeySessionStore
from utils.clock import Clock

logger = logging.getLogger(__name__)


def create_session_store(
    config: CheckoutConfig,
    valkey: ValkeyClient | None = None,
    clock: Clock | None = None,
) -> SessionStore:
    """
    Build the configured SessionStore.

    Args:
        config: Checkout configuration (store_provider decides the backend)
        valkey: Connected client. Required for the valkey provider; when
            omitted the URL is read from Vault.
        clock: Time source shared with the SessionManager

    Raises:
        ValueError: Unknown provider.
    """
    if config.store_provider == "memory":
        logger.warning("Using in-memory session store (not for production)")
        return InMemorySessionStore(
            clock=clock,
            sweep_interval_seconds=config.memory_sweep_interval_seconds,
        )

    if config.store_provider == "valkey":
        if valkey is None:
            from clients.vault_client import get_valkey_url

            valkey = ValkeyClient(get_valkey_url())
        logger.info("Using Valkey session store (prefix %s)", config.session_key_prefix)
        return ValkeySessionStore(valkey, key_prefix=config.session_key_prefix, clock=clock)

    raise ValueError(f"Unknown session store provider: {config.store_provider}")
