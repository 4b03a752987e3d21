# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_valkey_url,
    get_payment_config,
    get_commerce_config,
    reset_vault_cache,
)
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.payment_client import PaymentGatewayClient, PaymentGatewayError, PaymentTimeoutError
from clients.mock_payment import MockPaymentProvider
from clients.commerce_client import CommerceClient, CommerceServiceError
