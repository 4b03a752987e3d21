"""
HashiCorp Vault client for checkout secrets.

AppRole authentication, KV v2 engine. Every path is scoped under
'checkout/' so this service cannot read another service's secrets.
Missing configuration fails at construction time.
"""

import os
import logging
from typing import Dict

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "checkout"

# Process-wide client and secret cache (one Vault login per process)
_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


def _ensure_vault_client() -> "VaultClient":
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


def reset_vault_cache() -> None:
    """Drop the cached client and secrets (tests, credential rotation)."""
    global _vault_client_instance
    _vault_client_instance = None
    _secret_cache.clear()


class VaultClient:
    """Vault client with AppRole auth and env-based config."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
        mount_point: str = "secret",
    ):
        """
        Read VAULT_ADDR, VAULT_NAMESPACE, VAULT_ROLE_ID and VAULT_SECRET_ID
        from the environment (explicit arguments win) and log in.

        Raises:
            ValueError: Required configuration missing.
            PermissionError: AppRole login rejected.
        """
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        self.vault_role_id = os.getenv("VAULT_ROLE_ID")
        self.vault_secret_id = os.getenv("VAULT_SECRET_ID")
        self.mount_point = mount_point

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")

        if not self.vault_role_id or not self.vault_secret_id:
            raise ValueError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        client_kwargs = {"url": self.vault_addr}
        if self.vault_namespace:
            client_kwargs["namespace"] = self.vault_namespace

        self.client = hvac.Client(**client_kwargs)
        self._login()

        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed")

        logger.info("Vault client initialized: %s", self.vault_addr)

    def _login(self) -> None:
        try:
            response = self.client.auth.approle.login(
                role_id=self.vault_role_id,
                secret_id=self.vault_secret_id,
            )
        except Exception as e:
            logger.error("AppRole authentication failed: %s", e)
            raise PermissionError(f"AppRole authentication failed: {e}") from e
        self.client.token = response["auth"]["client_token"]

    def read_secret(self, path: str) -> Dict[str, str]:
        """
        Read every field of a KV v2 secret under checkout/.

        Raises:
            PermissionError: Path missing or access denied.
        """
        full_path = f"{_SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path,
                mount_point=self.mount_point,
                raise_on_deleted_version=True,
            )
        except InvalidPath as e:
            logger.error("Secret path not found: %s", full_path)
            raise PermissionError(f"Secret path '{full_path}' not found in Vault") from e
        except (Unauthorized, Forbidden) as e:
            logger.error("Access denied to secret %s: %s", full_path, e)
            raise PermissionError(f"Access denied to secret '{full_path}': {e}") from e

        return response["data"]["data"]

    def get_secret(self, path: str, field: str) -> str:
        """
        Read one field of a secret under checkout/.

        Raises:
            PermissionError: Path missing or access denied.
            KeyError: Field not present in the secret.
        """
        secret = self.read_secret(path)
        if field not in secret:
            raise KeyError(
                f"Field '{field}' not found in secret '{_SECRET_PREFIX}/{path}'. "
                f"Available: {', '.join(sorted(secret))}"
            )
        return secret[field]


# Convenience functions


def _get_cached(path: str, field: str) -> str:
    cache_key = f"{_SECRET_PREFIX}/{path}/{field}"

    if cache_key not in _secret_cache:
        _secret_cache[cache_key] = _ensure_vault_client().get_secret(path, field)
    return _secret_cache[cache_key]


def get_database_url() -> str:
    """PostgreSQL URL for the audit database."""
    return _get_cached("database", "url")


def get_valkey_url() -> str:
    """Valkey (Redis) URL for session storage."""
    return _get_cached("valkey", "url")


def get_payment_config() -> Dict[str, str]:
    """Payment gateway settings: gateway_url, api_key."""
    return {field: _get_cached("payment", field) for field in ("gateway_url", "api_key")}


def get_commerce_config() -> Dict[str, str]:
    """Cart/order service settings: base_url, api_key."""
    return {field: _get_cached("commerce", field) for field in ("base_url", "api_key")}
