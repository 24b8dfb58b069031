"""
Payment provider clients.

This package contains provider-specific implementations:
- base.py: PaymentProviderClient protocol, value objects, shared HTTP handling
- mercadopago.py: Mercado Pago Payments API (static token)
- picpay.py: PicPay Payment Link API (OAuth2 client credentials)

Provider Selection:
    Providers are selected by kind string ("mercadopago", "picpay").
    Use the get_provider_client() factory function.

Usage:
    from payments.providers import get_provider_client

    client = get_provider_client("picpay")
    token = client.authenticate(credential)
    payload = client.get_payment_status(token, link_id)

Adding New Providers:
    1. Create new file implementing PaymentProviderClient
    2. Add the kind to payments.state_machines.PaymentProvider
    3. Register in PROVIDERS dict below
"""

from __future__ import annotations

from payments.providers.base import (
    BaseProviderClient,
    PaymentProviderClient,
    ProviderCredential,
    RawStatusPayload,
    RefundResult,
    build_refund_idempotency_key,
)
from payments.providers.mercadopago import MercadoPagoClient
from payments.providers.picpay import PaymentLink, PicPayClient
from payments.state_machines import PaymentProvider

# Provider registry
# Maps provider kind to client class
PROVIDERS: dict[str, type[BaseProviderClient]] = {
    PaymentProvider.MERCADOPAGO: MercadoPagoClient,
    PaymentProvider.PICPAY: PicPayClient,
}


def get_provider_client(provider_kind: str, **kwargs) -> PaymentProviderClient:
    """
    Get a provider client by kind.

    Args:
        provider_kind: Provider kind string
        **kwargs: Client options (timeout, session)

    Returns:
        Configured client instance

    Raises:
        ValueError: If provider kind unknown
    """
    client_class = PROVIDERS.get(provider_kind)
    if client_class is None:
        raise ValueError(f"Unknown payment provider: {provider_kind}")
    return client_class(**kwargs)


def list_providers() -> list[str]:
    """Get list of available provider kinds."""
    return [str(kind) for kind in PROVIDERS]


__all__ = [
    "PROVIDERS",
    "BaseProviderClient",
    "MercadoPagoClient",
    "PaymentLink",
    "PaymentProviderClient",
    "PicPayClient",
    "ProviderCredential",
    "RawStatusPayload",
    "RefundResult",
    "build_refund_idempotency_key",
    "get_provider_client",
    "list_providers",
]
