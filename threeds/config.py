"""Checkout / 3DS session configuration."""

import os
from typing import Literal

from pydantic import BaseModel, Field


class CheckoutConfig(BaseModel):
    """
    Checkout service configuration.

    The 30-minute session lifetime is a fixed policy and deliberately not
    configurable here.
    """

    # Session storage
    store_provider: Literal["valkey", "memory"] = Field(
        default="valkey",
        description="Session store backend, selected once at startup",
    )
    session_key_prefix: str = Field(
        default="threeds:session:",
        description="Valkey key prefix for session records",
        min_length=1,
    )
    memory_sweep_interval_seconds: float | None = Field(
        default=None,
        description="Background purge interval for the in-memory store (None disables)",
        gt=0,
    )

    # Storage retries (StorageError only)
    storage_retry_attempts: int = Field(
        default=3,
        description="Total attempts for retryable storage operations",
        ge=1,
        le=10,
    )
    storage_retry_base_delay_seconds: float = Field(
        default=0.05,
        description="Delay before the first retry; doubles each attempt",
        ge=0,
        le=5,
    )
    storage_retry_max_delay_seconds: float = Field(
        default=1.0,
        description="Upper bound on a single retry delay",
        ge=0,
        le=30,
    )

    # Collaborators
    authorization_timeout_seconds: float = Field(
        default=15,
        description="Bound on the payment authorization call after a session is consumed",
        ge=1,
        le=60,
    )
    cleanup_workers: int = Field(
        default=2,
        description="Threads for best-effort session cleanup",
        ge=1,
        le=16,
    )

    # Payment processor
    payment_provider: Literal["gateway", "mock"] = Field(
        default="gateway",
        description="Real payment gateway, or the deterministic mock backend",
    )

    @classmethod
    def from_env(cls) -> "CheckoutConfig":
        """
        Build config from environment variables.

        SESSION_STORE_PROVIDER picks the backend. ENVIRONMENT=test or
        USE_MOCK_SESSION_STORE=true forces the in-memory store.
        """
        values: dict = {}

        provider = os.getenv("SESSION_STORE_PROVIDER")
        if provider:
            values["store_provider"] = provider.lower()
        if os.getenv("ENVIRONMENT") == "test" or os.getenv("USE_MOCK_SESSION_STORE") == "true":
            values["store_provider"] = "memory"

        timeout = os.getenv("AUTHORIZATION_TIMEOUT_SECONDS")
        if timeout:
            values["authorization_timeout_seconds"] = float(timeout)

        prefix = os.getenv("SESSION_KEY_PREFIX")
        if prefix:
            values["session_key_prefix"] = prefix

        payments = os.getenv("PAYMENT_PROVIDER")
        if payments:
            values["payment_provider"] = payments.lower()

        return cls(**values)
